from __future__ import annotations

import socket
import threading

import pytest

from tcpchat.config import ServerRuntimeConfig
from tcpchat.connection import Connection
from tcpchat.service import ChatServer


class LineClient:
    """Raw-socket test client speaking the newline protocol."""

    def __init__(self, address: tuple[str, int], timeout: float = 3.0) -> None:
        self.sock = socket.create_connection(address, timeout=timeout)
        self._buf = b""

    def send(self, text: str) -> None:
        self.sock.sendall(text.encode("utf-8") + b"\n")

    def send_raw(self, data: bytes) -> None:
        self.sock.sendall(data)

    def recv_line(self) -> str:
        while b"\n" not in self._buf:
            data = self.sock.recv(4096)
            if not data:
                raise EOFError(f"connection closed, buffered={self._buf!r}")
            self._buf += data
        line, self._buf = self._buf.split(b"\n", 1)
        return line.decode("utf-8")

    def expect(self, text: str) -> None:
        assert self.recv_line() == text

    def at_eof(self) -> bool:
        if b"\n" in self._buf:
            return False
        try:
            return self.sock.recv(4096) == b""
        except ConnectionResetError:
            return True

    def nothing_pending(self, wait: float = 0.2) -> bool:
        if self._buf:
            return False
        self.sock.settimeout(wait)
        try:
            data = self.sock.recv(4096)
        except socket.timeout:
            return True
        finally:
            self.sock.settimeout(3.0)
        self._buf += data
        return False

    def register(self, name: str) -> None:
        self.send(f"#new client:{name}")
        self.expect(f"Client {name} has joined the chat")

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass


@pytest.fixture
def make_server():
    servers: list[tuple[ChatServer, threading.Thread]] = []

    def _make(**overrides) -> ChatServer:
        cfg = ServerRuntimeConfig(host="127.0.0.1", port=0, accept_timeout_s=0.1, **overrides)
        srv = ChatServer(cfg)
        srv.start()
        t = threading.Thread(target=srv.serve_forever, daemon=True)
        t.start()
        servers.append((srv, t))
        return srv

    yield _make

    for srv, t in servers:
        srv.stop()
        t.join(timeout=2.0)


@pytest.fixture
def server(make_server) -> ChatServer:
    return make_server()


@pytest.fixture
def connect():
    clients: list[LineClient] = []

    def _connect(srv: ChatServer) -> LineClient:
        c = LineClient(srv.address)
        clients.append(c)
        return c

    yield _connect

    for c in clients:
        c.close()


@pytest.fixture
def conn_pair():
    """A server-side Connection and the raw peer socket it talks to."""
    pairs: list[tuple[Connection, socket.socket]] = []

    def _pair() -> tuple[Connection, socket.socket]:
        a, b = socket.socketpair()
        b.settimeout(3.0)
        conn = Connection(sock=a, address=("127.0.0.1", 40000 + len(pairs)))
        pairs.append((conn, b))
        return conn, b

    yield _pair

    for conn, peer in pairs:
        peer.close()
        conn.close()
