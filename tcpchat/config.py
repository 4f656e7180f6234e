from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path

from .constants import (
    DEFAULT_CLIENT_HOST,
    DEFAULT_HOST,
    DEFAULT_LOG_FORMAT,
    DEFAULT_PORT,
    MAX_CLIENTS,
    MAX_LINE_BYTES,
    NAME_MAX_CHARS,
    RECV_BUFFER_SIZE,
)
from .paths import ensure_private_dir


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_clients: int = MAX_CLIENTS
    name_max_chars: int = NAME_MAX_CHARS
    max_line_bytes: int = MAX_LINE_BYTES
    recv_buffer_size: int = RECV_BUFFER_SIZE
    accept_timeout_s: float = 1.0
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = DEFAULT_LOG_FORMAT
    log_datefmt: str | None = None


@dataclass(frozen=True)
class ClientRuntimeConfig:
    name: str
    host: str = DEFAULT_CLIENT_HOST
    port: int = DEFAULT_PORT
    recv_buffer_size: int = RECV_BUFFER_SIZE
    max_line_bytes: int = MAX_LINE_BYTES


_INT_KEYS = ("port", "max_clients", "name_max_chars", "max_line_bytes", "recv_buffer_size")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """Overlay a parsed config document onto ``base``.

    Keys may live at the top level or under ``[server]``; the ``[logging]``
    table maps onto the ``log_*`` fields. Unknown keys are ignored.
    """

    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key in ("level", "console", "file", "format", "datefmt"):
            if key in log_table:
                mapped[f"log_{key}"] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            try:
                updates[key] = int(updates[key])
            except (TypeError, ValueError) as e:
                raise ValueError(f"{key} must be an integer, got {updates[key]!r}") from e
    if "accept_timeout_s" in updates:
        updates["accept_timeout_s"] = float(updates["accept_timeout_s"])
    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])

    if "log_file" in updates and updates["log_file"] == "":
        updates["log_file"] = None
    if "log_datefmt" in updates and updates["log_datefmt"] == "":
        updates["log_datefmt"] = None

    return replace(base, **updates) if updates else base


def load_server_config(path: str, base: ServerRuntimeConfig | None = None) -> ServerRuntimeConfig:
    cfg = base or ServerRuntimeConfig()
    cfg = apply_config_data(cfg, load_toml(path))
    return replace(cfg, config_path=path)


def render_default_config(cfg: ServerRuntimeConfig | None = None) -> str:
    from tomlkit import comment, document, dumps, nl, table

    cfg = cfg or ServerRuntimeConfig()

    doc = document()
    doc.add(comment("tcpchatd configuration (TOML)"))
    doc.add(comment(""))
    doc.add(comment("This file was created on first run."))
    doc.add(comment("Edit it, then start tcpchatd again."))
    doc.add(nl())

    server = table()
    server.add(comment("Address and TCP port to listen on."))
    server.add("host", cfg.host)
    server.add("port", cfg.port)
    server.add(nl())
    server.add(comment("Roster capacity. Registrations beyond this are rejected."))
    server.add("max_clients", cfg.max_clients)
    server.add(comment("Longest accepted display name, in characters."))
    server.add("name_max_chars", cfg.name_max_chars)
    server.add(nl())
    server.add(comment("Longest accepted line in bytes. Longer lines drop the connection."))
    server.add("max_line_bytes", cfg.max_line_bytes)
    server.add("recv_buffer_size", cfg.recv_buffer_size)
    server.add(nl())
    server.add(comment("How often the accept loop wakes up to check for shutdown."))
    server.add("accept_timeout_s", cfg.accept_timeout_s)
    doc.add("server", server)

    logging_table = table()
    logging_table.add(comment("Log level for tcpchatd itself."))
    logging_table.add("level", cfg.log_level)
    logging_table.add(comment("Log to stderr (systemd/journald friendly)."))
    logging_table.add("console", cfg.log_console)
    logging_table.add(comment("Optional file path for logs (leave empty to disable)."))
    logging_table.add("file", cfg.log_file or "")
    logging_table.add(comment("Log format and optional date format."))
    logging_table.add("format", cfg.log_format)
    logging_table.add("datefmt", cfg.log_datefmt or "")
    doc.add("logging", logging_table)

    return dumps(doc)


def write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(render_default_config())
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass
