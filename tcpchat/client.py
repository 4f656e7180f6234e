from __future__ import annotations

import logging
import socket
import sys
import threading
from typing import TextIO

from .config import ClientRuntimeConfig
from .connection import Connection
from .constants import MSG_DISCONNECTED, QUIT_COMMAND, REGISTER_TAG
from .errors import ChatError

BANNER = (
    "Connected to chat server\n"
    "Commands:\n"
    f"- Type '{QUIT_COMMAND}' to exit\n"
    "- Type '@username message' to send private message\n"
    "- Type your message and press enter to send to everyone\n"
)


class ChatClient:
    """
    Terminal chat client.

    One thread copies input lines to the server, another prints whatever
    the server sends. ``run`` returns when either side finishes.
    """

    def __init__(self, config: ClientRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("tcpchat.client")
        self.connection: Connection | None = None
        self._done = threading.Event()
        self.exit_code = 0

    def connect(self) -> None:
        sock = socket.create_connection((self.config.host, int(self.config.port)))
        self.connection = Connection(
            sock=sock,
            address=(self.config.host, int(self.config.port)),
            recv_buffer_size=int(self.config.recv_buffer_size),
            max_line_bytes=int(self.config.max_line_bytes),
        )
        self.connection.send_line(f"{REGISTER_TAG}{self.config.name}")
        self.log.debug("Connected to %s as %r", self.connection.peer, self.config.name)

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
        if self.connection is None:
            self.connect()

        stdin = stdin if stdin is not None else sys.stdin
        stdout = stdout if stdout is not None else sys.stdout

        stdout.write(BANNER + "\n")
        stdout.flush()

        receiver = threading.Thread(
            target=self._receive_loop, args=(stdout,), name="tcpchat-recv", daemon=True
        )
        sender = threading.Thread(
            target=self._send_loop, args=(stdin,), name="tcpchat-send", daemon=True
        )
        receiver.start()
        sender.start()

        self._done.wait()
        self.close()
        receiver.join(timeout=1.0)
        return self.exit_code

    def _send_loop(self, stdin: TextIO) -> None:
        conn = self.connection
        try:
            for raw in stdin:
                if self._done.is_set():
                    return
                line = raw.rstrip("\r\n")
                if line == QUIT_COMMAND:
                    return
                if not conn.send_line(line):
                    return
        finally:
            self._done.set()

    def _receive_loop(self, stdout: TextIO) -> None:
        conn = self.connection
        try:
            while not self._done.is_set():
                for line in conn.recv_lines():
                    stdout.write(line + "\n")
                    stdout.flush()
        except (ChatError, OSError) as e:
            if not self._done.is_set():
                self.log.debug("Receive ended: %s", e)
                pending = getattr(e, "pending", None)
                if pending:
                    stdout.write(pending + "\n")
                stdout.write(MSG_DISCONNECTED + "\n")
                stdout.flush()
                self.exit_code = 1
        finally:
            self._done.set()

    def close(self) -> None:
        self._done.set()
        if self.connection is not None:
            self.connection.close()
