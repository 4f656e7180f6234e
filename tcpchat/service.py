from __future__ import annotations

import logging
import signal
import socket
import threading

from .config import ServerRuntimeConfig
from .connection import Connection
from .roster import Roster
from .router import MessageRouter
from .session import SessionHandler
from .stats import StatsManager


class ChatServer:
    def __init__(self, config: ServerRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("tcpchat.server")

        self._shutdown = threading.Event()

        self.stats = StatsManager()
        self.roster = Roster(config.max_clients)
        self.router = MessageRouter(self.roster, self.stats)

        self._sock: socket.socket | None = None
        self._address: tuple[str, int] | None = None

        # Every accepted connection, registered or not, so stop() can reach
        # sessions still waiting for their first line.
        self._conn_lock = threading.Lock()
        self._connections: set[Connection] = set()

    @property
    def stopping(self) -> bool:
        return self._shutdown.is_set()

    @property
    def address(self) -> tuple[str, int]:
        if self._address is None:
            return (self.config.host, self.config.port)
        return self._address

    def start(self) -> None:
        """Bind and listen. Raises OSError if the address is unavailable."""
        self.stats.set_start_time()

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.host, int(self.config.port)))
            sock.listen(max(1, int(self.config.max_clients)))
        except OSError as e:
            sock.close()
            self.log.error("Failed to bind to %s:%s: %s", self.config.host, self.config.port, e)
            raise

        # Wake up periodically so stop() is noticed.
        sock.settimeout(float(self.config.accept_timeout_s))
        self._sock = sock
        self._address = sock.getsockname()[:2]

        self.log.info("Chat server listening on %s:%s", *self._address)
        self.log.info(
            "Policy max_clients=%s name_max_chars=%s max_line_bytes=%s",
            self.config.max_clients,
            self.config.name_max_chars,
            self.config.max_line_bytes,
        )

    def serve_forever(self) -> None:
        if self._sock is None:
            self.start()

        while not self._shutdown.is_set():
            sock = self._sock
            if sock is None:
                break
            try:
                client_sock, client_addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown.is_set():
                    break
                self.log.error("Accept failed: %s", e)
                continue

            self._spawn_session(client_sock, client_addr)

    def _spawn_session(self, client_sock: socket.socket, client_addr) -> None:
        # Accepted sockets may inherit the listener timeout on some platforms.
        client_sock.settimeout(None)
        conn = Connection(
            sock=client_sock,
            address=client_addr[:2] if client_addr else None,
            recv_buffer_size=int(self.config.recv_buffer_size),
            max_line_bytes=int(self.config.max_line_bytes),
        )
        with self._conn_lock:
            self._connections.add(conn)
        self.stats.inc("connections")
        self.log.info("New connection conn_id=%s peer=%s", conn.id, conn.peer)

        handler = SessionHandler(self, conn)
        thread = threading.Thread(
            target=handler.run,
            name=f"tcpchat-session-{conn.id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            self.log.error("Could not start session thread conn_id=%s: %s", conn.id, e)
            self.forget(conn)
            conn.close()

    def forget(self, conn: Connection) -> None:
        with self._conn_lock:
            self._connections.discard(conn)

    def live_connections(self) -> list[Connection]:
        with self._conn_lock:
            return list(self._connections)

    def run_forever(self) -> None:
        if self._sock is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        try:
            self.serve_forever()
        finally:
            self.stop()
            self.log.info(
                "%s",
                self.stats.format_stats(registered=self.roster.count, capacity=self.roster.capacity),
            )

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.log.info("Shutting down chat server")

        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

        # A session may sit in sendall() holding roster.lock; shutting the
        # sockets down first is what lets it release the lock.
        for conn in self.live_connections():
            conn.shutdown()
        self.roster.clear()
