"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import threading
import time


class StatsManager:
    """
    Diagnostic counters for a running server.

    Tracks:
    - Connections accepted and registrations rejected
    - Joins and parts
    - Lines and bytes in, bytes out
    - Broadcast and private messages routed
    - Error lines sent to clients and failed sends
    """

    COUNTERS = (
        "connections",
        "joins",
        "parts",
        "rejected",
        "lines_in",
        "bytes_in",
        "bytes_out",
        "msgs_broadcast",
        "msgs_private",
        "errors_sent",
        "send_failures",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None
        self._counters: dict[str, int] = {k: 0 for k in self.COUNTERS}

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return time.monotonic() - self.started_monotonic

    def format_stats(self, *, registered: int = 0, capacity: int = 0) -> str:
        """Format current statistics as a human-readable multi-line string."""
        from . import __version__

        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"tcpchatd {__version__} stats")
        lines.append(f"uptime_s={self.uptime_s():.1f}")
        lines.append(f"clients={registered}/{capacity}")
        lines.append(
            "sessions: connections={} joins={} parts={} rejected={}".format(
                c["connections"], c["joins"], c["parts"], c["rejected"]
            )
        )
        lines.append(
            "io: lines_in={} bytes_in={} bytes_out={} send_failures={}".format(
                c["lines_in"], c["bytes_in"], c["bytes_out"], c["send_failures"]
            )
        )
        lines.append(
            "messages: broadcast={} private={} errors_sent={}".format(
                c["msgs_broadcast"], c["msgs_private"], c["errors_sent"]
            )
        )
        return "\n".join(lines)
