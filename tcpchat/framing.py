"""Newline framing for the chat stream.

TCP delivers bytes in arbitrary chunks: one ``recv`` may hold half a line
or several lines. ``LineBuffer`` accumulates reads and hands back complete
lines only.
"""

from __future__ import annotations

from .constants import ENCODING, LINE_TERMINATOR, MAX_LINE_BYTES
from .errors import ProtocolError


def encode_line(text: str) -> bytes:
    """Encode one outgoing chat line, terminator included."""
    return text.encode(ENCODING) + LINE_TERMINATOR


def decode_line(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode(ENCODING, errors="replace")


class LineBuffer:
    def __init__(self, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self.max_line_bytes = int(max_line_bytes)
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def _too_long(self, end: int) -> bool:
        # The \r of a CRLF ending does not count towards the limit.
        if end > 0 and self._buf[end - 1] == 0x0D:
            end -= 1
        return end > self.max_line_bytes

    def feed(self, data: bytes) -> list[str]:
        """Append ``data`` and return every line it completed.

        Raises ``ProtocolError`` if a line grows past ``max_line_bytes``
        without a terminator.
        """
        self._buf.extend(data)

        lines: list[str] = []
        while True:
            idx = self._buf.find(LINE_TERMINATOR)
            if idx < 0:
                break
            if self._too_long(idx):
                raise ProtocolError(f"line exceeds {self.max_line_bytes} bytes")
            raw = bytes(self._buf[:idx])
            del self._buf[: idx + 1]
            lines.append(decode_line(raw))

        if self._too_long(len(self._buf)):
            raise ProtocolError(f"line exceeds {self.max_line_bytes} bytes")
        return lines

    def flush(self) -> str | None:
        """Return a trailing unterminated line, if any, and reset."""
        if not self._buf:
            return None
        raw = bytes(self._buf)
        self._buf.clear()
        return decode_line(raw)
