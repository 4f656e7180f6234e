from __future__ import annotations

import logging
import socket
import threading
import time
import uuid
from dataclasses import dataclass, field

from .constants import MAX_LINE_BYTES, RECV_BUFFER_SIZE
from .errors import ConnectionClosed
from .framing import LineBuffer, encode_line

logger = logging.getLogger("tcpchat.connection")


@dataclass(eq=False)
class Connection:
    """
    One accepted TCP stream.

    Wraps the raw socket with:
    - a short id for logs
    - buffered, newline-framed reads (``recv_lines``)
    - sends that report failure instead of raising
    - an idempotent ``close``

    Instances hash by identity so they can key the roster.
    """

    sock: socket.socket
    address: tuple[str, int] | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    created_at: float = field(default_factory=time.time)
    recv_buffer_size: int = RECV_BUFFER_SIZE
    max_line_bytes: int = MAX_LINE_BYTES

    bytes_in: int = 0
    bytes_out: int = 0

    _lines: LineBuffer = field(init=False, repr=False)
    _send_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._lines = LineBuffer(self.max_line_bytes)

    @property
    def peer(self) -> str:
        if not self.address:
            return "-"
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def closed(self) -> bool:
        return self._closed

    def recv_lines(self) -> list[str]:
        """
        Block until at least one complete line is available.

        Raises:
            ConnectionClosed: the peer closed the stream.
            ProtocolError: a line exceeded ``max_line_bytes``.
            OSError: transport failure.
        """
        while True:
            data = self.sock.recv(self.recv_buffer_size)
            if not data:
                raise ConnectionClosed(
                    f"peer {self.peer} closed the connection",
                    pending=self._lines.flush(),
                )
            self.bytes_in += len(data)
            lines = self._lines.feed(data)
            if lines:
                return lines

    def send(self, payload: bytes) -> bool:
        with self._send_lock:
            if self._closed:
                return False
            try:
                self.sock.sendall(payload)
            except OSError as e:
                logger.debug("Send failed conn_id=%s bytes=%s err=%s", self.id, len(payload), e)
                return False
        self.bytes_out += len(payload)
        return True

    def send_line(self, text: str) -> bool:
        return self.send(encode_line(text))

    def shutdown(self) -> None:
        """Unblock a reader waiting in ``recv_lines`` without releasing the socket."""
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        with self._send_lock:
            if self._closed:
                return
            self._closed = True
        try:
            # FIN first so a queued reply (e.g. a rejection) reaches the peer.
            self.sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
        try:
            self.sock.settimeout(0.5)
            for _ in range(64):
                if not self.sock.recv(self.recv_buffer_size):
                    break
        except OSError:
            pass
        try:
            self.sock.close()
        except OSError:
            pass
        logger.debug(
            "Connection closed conn_id=%s peer=%s bytes_in=%s bytes_out=%s",
            self.id,
            self.peer,
            self.bytes_in,
            self.bytes_out,
        )
