from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import (
    FMT_BROADCAST,
    FMT_JOINED,
    FMT_LEFT,
    FMT_PRIVATE,
    FMT_USER_NOT_FOUND,
    PRIVATE_PREFIX,
)
from .framing import encode_line
from .stats import StatsManager

if TYPE_CHECKING:
    from .connection import Connection
    from .roster import Roster

Outgoing = list[tuple["Connection", bytes]]


def parse_private(line: str) -> tuple[str, str | None] | None:
    """
    Split ``@name body`` into ``(name, body)``.

    Returns None when ``line`` is not a private message at all, and
    ``(name, None)`` when no whitespace follows the recipient. Only the
    first whitespace character is consumed; the body is kept verbatim.
    """
    if not line.startswith(PRIVATE_PREFIX):
        return None

    rest = line[len(PRIVATE_PREFIX):]
    for i, ch in enumerate(rest):
        if ch.isspace():
            return rest[:i], rest[i + 1:]
    return rest, None


class MessageRouter:
    """
    Decides who receives each chat line and formats what they receive.

    The router never writes to sockets while deciding. Each handler appends
    ``(connection, payload)`` pairs to ``outgoing``; ``deliver`` writes them.
    Callers hold ``roster.lock`` across both steps so that fan-outs from
    different senders never interleave.
    """

    def __init__(self, roster: Roster, stats: StatsManager | None = None) -> None:
        self.roster = roster
        self.stats = stats or StatsManager()
        self.log = logging.getLogger("tcpchat.router")

    def route_line(self, connection: Connection, line: str, outgoing: Outgoing) -> None:
        """Main entry point for a chat line from a registered connection."""
        with self.roster.lock:
            sender = self.roster.name_of(connection) or ""

            private = parse_private(line)
            if private is None:
                self._broadcast(FMT_BROADCAST.format(sender=sender, body=line), outgoing)
                self.stats.inc("msgs_broadcast")
                if self.log.isEnabledFor(logging.DEBUG):
                    self.log.debug(
                        "Broadcast from=%r conn_id=%s chars=%s",
                        sender,
                        connection.id,
                        len(line),
                    )
                return

            recipient, body = private
            if not recipient or body is None:
                self.log.debug(
                    "Dropped private message without recipient or body from=%r conn_id=%s",
                    sender,
                    connection.id,
                )
                return

            self._handle_private(connection, sender, recipient, body, outgoing)

    def _handle_private(
        self,
        connection: Connection,
        sender: str,
        recipient: str,
        body: str,
        outgoing: Outgoing,
    ) -> None:
        target = self.roster.find_by_name(recipient)
        if target is None:
            outgoing.append((connection, encode_line(FMT_USER_NOT_FOUND.format(name=recipient))))
            self.stats.inc("errors_sent")
            self.log.debug("Private recipient not found from=%r to=%r", sender, recipient)
            return

        payload = encode_line(FMT_PRIVATE.format(sender=sender, body=body))
        # Recipient copy, then the sender's echo, even when they are the same.
        outgoing.append((target, payload))
        outgoing.append((connection, payload))
        self.stats.inc("msgs_private")
        self.log.debug("Private from=%r to=%r chars=%s", sender, recipient, len(body))

    def announce_join(self, name: str, outgoing: Outgoing) -> None:
        self._broadcast(FMT_JOINED.format(name=name), outgoing)

    def announce_leave(self, name: str, outgoing: Outgoing) -> None:
        self._broadcast(FMT_LEFT.format(name=name), outgoing)

    def _broadcast(self, text: str, outgoing: Outgoing) -> None:
        payload = encode_line(text)
        for conn, _name in self.roster.all_occupied():
            outgoing.append((conn, payload))

    def deliver(self, outgoing: Outgoing) -> int:
        """
        Write every queued payload; return how many writes failed.

        A failed write is logged and skipped. The failing session's own
        reader notices the broken stream and tears itself down.
        """
        failures = 0
        for conn, payload in outgoing:
            if conn.send(payload):
                self.stats.inc("bytes_out", len(payload))
                continue
            failures += 1
            self.stats.inc("send_failures")
            self.log.warning("Send failed conn_id=%s peer=%s bytes=%s", conn.id, conn.peer, len(payload))
        outgoing.clear()
        return failures
