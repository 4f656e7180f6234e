import logging
import socket
import tomllib
from argparse import Namespace

import pytest

from tcpchat import cli
from tcpchat.config import (
    ServerRuntimeConfig,
    apply_config_data,
    load_server_config,
    render_default_config,
    write_default_config,
)
from tcpchat.constants import CLIENT_LOG_FORMAT, DEFAULT_LOG_FORMAT
from tcpchat.logging_config import configure_logging, parse_level


def test_default_config_round_trips_to_defaults() -> None:
    data = tomllib.loads(render_default_config())
    assert data["server"]["port"] == 5208
    assert data["logging"]["file"] == ""
    assert apply_config_data(ServerRuntimeConfig(), data) == ServerRuntimeConfig()


def test_default_config_is_commented() -> None:
    text = render_default_config()
    assert text.startswith("# tcpchatd configuration (TOML)")
    assert "[server]" in text
    assert "[logging]" in text


def test_apply_config_tables() -> None:
    data = {
        "server": {"host": "127.0.0.1", "port": 6000, "max_clients": 3},
        "logging": {"level": "DEBUG", "file": "", "datefmt": ""},
        "unknown": 1,
    }
    cfg = apply_config_data(ServerRuntimeConfig(), data)
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 6000
    assert cfg.max_clients == 3
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None
    assert cfg.log_datefmt is None


def test_config_path_cannot_be_overridden_by_file() -> None:
    base = ServerRuntimeConfig(config_path="/etc/tcpchatd.toml")
    cfg = apply_config_data(base, {"config_path": "/tmp/other.toml"})
    assert cfg.config_path == "/etc/tcpchatd.toml"


def test_bad_integer_is_rejected() -> None:
    with pytest.raises(ValueError):
        apply_config_data(ServerRuntimeConfig(), {"server": {"port": "not-a-port"}})


def test_load_server_config(tmp_path) -> None:
    path = tmp_path / "tcpchatd.toml"
    write_default_config(str(path))
    path.write_text(path.read_text(encoding="utf-8").replace("port = 5208", "port = 7001"), encoding="utf-8")

    cfg = load_server_config(str(path))
    assert cfg.port == 7001
    assert cfg.config_path == str(path)


def test_cli_overrides_file(tmp_path) -> None:
    path = tmp_path / "tcpchatd.toml"
    write_default_config(str(path))
    args = Namespace(
        config=str(path),
        host="127.0.0.1",
        port=9000,
        max_clients=None,
        log_level="WARNING",
        log_file="",
    )
    cfg = cli.build_server_config(args)
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 9000
    assert cfg.max_clients == 256
    assert cfg.log_level == "WARNING"
    assert cfg.log_file is None


def test_first_run_writes_config_and_exits(tmp_path, capsys) -> None:
    path = tmp_path / "nested" / "tcpchatd.toml"
    with pytest.raises(SystemExit) as exc:
        cli.main(["--config", str(path)])
    assert exc.value.code == 0
    assert path.exists()
    assert "Created default tcpchatd config" in capsys.readouterr().err


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)


def test_parse_level() -> None:
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(" WARN ") == logging.WARNING
    assert parse_level("15") == 15
    assert parse_level(logging.ERROR) == logging.ERROR
    assert parse_level("") == logging.INFO
    assert parse_level(None, logging.WARNING) == logging.WARNING
    assert parse_level("loud") == logging.INFO


def test_configure_logging_file(tmp_path, root_logger) -> None:
    log_path = tmp_path / "logs" / "tcpchatd.log"
    configure_logging("debug", log_file=str(log_path), console=False)

    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert root_logger.handlers[0].formatter._fmt == DEFAULT_LOG_FORMAT
    logging.getLogger("tcpchat.test").info("hello log")
    root_logger.handlers[0].flush()
    assert "hello log" in log_path.read_text(encoding="utf-8")
    assert (log_path.stat().st_mode & 0o777) == 0o600


def test_configure_logging_blank_file_is_console_only(root_logger) -> None:
    configure_logging("info", log_file="  ", fmt="%(message)s")

    assert len(root_logger.handlers) == 1
    assert isinstance(root_logger.handlers[0], logging.StreamHandler)
    assert root_logger.handlers[0].formatter._fmt == "%(message)s"


def test_server_main_logging_from_config(tmp_path, monkeypatch, root_logger) -> None:
    config_path = tmp_path / "tcpchatd.toml"
    log_path = tmp_path / "server.log"
    write_default_config(str(config_path))
    started: list[ServerRuntimeConfig] = []

    class _Server:
        def __init__(self, cfg: ServerRuntimeConfig) -> None:
            started.append(cfg)

        def start(self) -> None:
            pass

        def run_forever(self) -> None:
            pass

    monkeypatch.setattr(cli, "ChatServer", _Server)
    cli.main(["--config", str(config_path), "--log-level", "error", "--log-file", str(log_path)])

    assert started[0].log_file == str(log_path)
    assert root_logger.level == logging.ERROR
    assert any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)


def test_client_main_configures_logging(root_logger) -> None:
    # A port nobody listens on: connect fails after logging is set up.
    unused = socket.socket()
    unused.bind(("127.0.0.1", 0))
    port = unused.getsockname()[1]
    unused.close()

    with pytest.raises(SystemExit) as exc:
        cli.client_main(["bob", "--host", "127.0.0.1", "--port", str(port), "--log-level", "debug"])

    assert "connection to 127.0.0.1" in str(exc.value.code)
    assert root_logger.level == logging.DEBUG
    assert [h.formatter._fmt for h in root_logger.handlers] == [CLIENT_LOG_FORMAT]
