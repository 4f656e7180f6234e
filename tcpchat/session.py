from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .constants import FMT_INVALID_NAME, MSG_BAD_REGISTRATION, NAME_MAX_CHARS, REGISTER_TAG
from .errors import ChatError, ConnectionClosed, ProtocolError
from .util import normalize_name

if TYPE_CHECKING:
    from .connection import Connection
    from .service import ChatServer


class SessionState(Enum):
    CONNECTING = "connecting"
    REGISTERING = "registering"
    ACTIVE = "active"
    CLOSED = "closed"


def parse_registration(line: str, max_chars: int = NAME_MAX_CHARS) -> str:
    """
    Extract the display name from a ``#new client:<name>`` line.

    Raises ProtocolError, with the reply to send, if the tag is missing or
    the name is unusable.
    """
    if not line.startswith(REGISTER_TAG):
        raise ProtocolError(f"bad registration line {line[:40]!r}", reply=MSG_BAD_REGISTRATION)

    name = normalize_name(line[len(REGISTER_TAG):], max_chars)
    if name is None:
        raise ProtocolError(
            f"invalid name {line[len(REGISTER_TAG):][:40]!r}",
            reply=FMT_INVALID_NAME.format(max_chars=max_chars),
        )
    return name


class SessionHandler:
    """
    Drives one connection from registration to teardown.

    CONNECTING -> REGISTERING -> ACTIVE -> CLOSED. A rejected registration
    goes straight from REGISTERING to CLOSED without touching the roster.
    """

    def __init__(self, server: ChatServer, connection: Connection) -> None:
        self.server = server
        self.connection = connection
        self.log = logging.getLogger("tcpchat.session")
        self.state = SessionState.CONNECTING
        self.name: str | None = None
        self._pending: list[str] = []

    def run(self) -> None:
        conn = self.connection
        try:
            self.state = SessionState.REGISTERING
            try:
                self._register()
            except (ConnectionClosed, OSError) as e:
                self.log.info("Connection dropped before registration conn_id=%s peer=%s: %s", conn.id, conn.peer, e)
                return
            except ChatError as e:
                self._reject(e)
                return

            self.state = SessionState.ACTIVE
            try:
                self._message_loop()
            except ConnectionClosed as e:
                if e.pending:
                    self._handle_line(e.pending)
            except ProtocolError as e:
                self.log.warning("Dropping name=%r conn_id=%s: %s", self.name, conn.id, e)
            except OSError as e:
                self.log.info("Transport error name=%r conn_id=%s: %s", self.name, conn.id, e)
        finally:
            self._teardown()

    def _register(self) -> None:
        lines = self.connection.recv_lines()
        first, self._pending = lines[0], lines[1:]

        name = parse_registration(first, self.server.config.name_max_chars)

        router = self.server.router
        roster = self.server.roster
        with roster.lock:
            roster.register(self.connection, name)
            self.name = name
            outgoing: list = []
            router.announce_join(name, outgoing)
            router.deliver(outgoing)

        self.server.stats.inc("joins")
        self.log.info(
            "Client joined name=%r conn_id=%s peer=%s clients=%s",
            name,
            self.connection.id,
            self.connection.peer,
            roster.count,
        )

    def _reject(self, err: ChatError) -> None:
        self.server.stats.inc("rejected")
        self.log.info(
            "Registration rejected conn_id=%s peer=%s reason=%s: %s",
            self.connection.id,
            self.connection.peer,
            type(err).__name__,
            err,
        )
        if err.reply:
            self.connection.send_line(err.reply)
            self.server.stats.inc("errors_sent")

    def _message_loop(self) -> None:
        pending, self._pending = self._pending, []
        for line in pending:
            self._handle_line(line)

        while not self.server.stopping:
            for line in self.connection.recv_lines():
                self._handle_line(line)

    def _handle_line(self, line: str) -> None:
        self.server.stats.inc("lines_in")
        if not line:
            return
        outgoing: list = []
        with self.server.roster.lock:
            self.server.router.route_line(self.connection, line, outgoing)
            self.server.router.deliver(outgoing)

    def _teardown(self) -> None:
        conn = self.connection
        roster = self.server.roster
        router = self.server.router

        with roster.lock:
            name = roster.remove(conn)
            # No departure notices for a server shutdown.
            if name is not None and not self.server.stopping:
                outgoing: list = []
                router.announce_leave(name, outgoing)
                router.deliver(outgoing)

        conn.close()
        self.state = SessionState.CLOSED
        self.server.stats.inc("bytes_in", conn.bytes_in)
        self.server.forget(conn)

        if name is not None:
            self.server.stats.inc("parts")
            self.log.info("Client left name=%r conn_id=%s clients=%s", name, conn.id, roster.count)
        else:
            self.log.debug("Session closed conn_id=%s peer=%s", conn.id, conn.peer)
