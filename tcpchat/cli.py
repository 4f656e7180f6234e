from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace

from .client import ChatClient
from .config import (
    ClientRuntimeConfig,
    ServerRuntimeConfig,
    load_server_config,
    write_default_config,
)
from .constants import CLIENT_LOG_FORMAT, DEFAULT_CLIENT_HOST, DEFAULT_PORT
from .logging_config import configure_logging
from .paths import default_config_path
from .service import ChatServer
from .util import expand_path


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tcpchatd", description="Run a TCP chat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Address to listen on (default: 0.0.0.0)")
    p.add_argument("--port", type=int, default=None, help=f"TCP port (default: {DEFAULT_PORT})")
    p.add_argument(
        "--max-clients",
        type=int,
        default=None,
        help="Maximum number of registered clients",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_server_config(args: argparse.Namespace) -> ServerRuntimeConfig:
    cfg = ServerRuntimeConfig()

    config_path = expand_path(str(args.config)) if args.config else None
    if config_path:
        cfg = load_server_config(config_path, cfg)

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.max_clients is not None:
        cfg = replace(cfg, max_clients=int(args.max_clients))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))
    if not os.path.exists(config_path):
        write_default_config(config_path)
        print(
            "Created default tcpchatd config. Review it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run tcpchatd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    args.config = config_path
    cfg = build_server_config(args)

    configure_logging(
        cfg.log_level,
        log_file=cfg.log_file,
        console=cfg.log_console,
        fmt=cfg.log_format,
        datefmt=cfg.log_datefmt,
    )

    server = ChatServer(cfg)
    try:
        server.start()
    except OSError as e:
        raise SystemExit(f"tcpchatd: cannot listen on {cfg.host}:{cfg.port}: {e}") from e
    server.run_forever()


def _build_client_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tcpchat", description="Connect to a TCP chat server")
    p.add_argument("name", help="Display name to register with")
    p.add_argument("--host", default=DEFAULT_CLIENT_HOST, help="Server address")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    p.add_argument("--log-level", default="WARNING", help="Client-side logging level (written to stderr)")
    p.add_argument("--log-file", default=None, help="Also write client logs to this file")
    return p


def client_main(argv: list[str] | None = None) -> None:
    args = _build_client_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    configure_logging(args.log_level, log_file=args.log_file, fmt=CLIENT_LOG_FORMAT)

    cfg = ClientRuntimeConfig(name=str(args.name), host=str(args.host), port=int(args.port))
    client = ChatClient(cfg)
    try:
        client.connect()
    except OSError as e:
        raise SystemExit(f"tcpchat: connection to {cfg.host}:{cfg.port} failed: {e}") from e

    try:
        code = client.run()
    except KeyboardInterrupt:
        client.close()
        code = 0
    raise SystemExit(code)


if __name__ == "__main__":
    main()
