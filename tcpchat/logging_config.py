from __future__ import annotations

import logging
import os
from pathlib import Path

from .constants import DEFAULT_LOG_FORMAT


def parse_level(value: str | int | None, default: int = logging.INFO) -> int:
    """Map ``"debug"``, ``"WARN"``, ``"10"`` or ``10`` to a logging level."""

    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    if text == "WARN":
        text = "WARNING"
    names = logging.getLevelNamesMapping()
    if text in names:
        return names[text]
    try:
        return int(text)
    except ValueError:
        return default


def _open_log_file(path: str) -> logging.Handler:
    p = Path(os.path.expanduser(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(
    level: str | int | None,
    *,
    log_file: str | None = None,
    console: bool = True,
    fmt: str | None = None,
    datefmt: str | None = None,
) -> None:
    """Install root handlers for the server or the client.

    Console output goes to stderr so the client's chat stream on stdout
    stays clean. ``log_file`` (blank means none) is created with mode
    0600. Calling again replaces the handlers installed before.
    """

    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file and str(log_file).strip():
        handlers.append(_open_log_file(str(log_file)))

    formatter = logging.Formatter(
        fmt=(fmt or "").strip() or DEFAULT_LOG_FORMAT,
        datefmt=datefmt or None,
    )
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    root.setLevel(parse_level(level))
    logging.captureWarnings(True)
