"""The server's table of registered chat sessions."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .constants import MAX_CLIENTS, MSG_NAME_TAKEN, MSG_SERVER_FULL
from .errors import CapacityExceeded, NameConflict

if TYPE_CHECKING:
    from .connection import Connection


@dataclass
class ClientSession:
    connection: Connection
    name: str
    joined_at: float = field(default_factory=time.time)


class Roster:
    """
    Registered sessions, indexed by connection and by name.

    Every operation takes ``lock`` itself. Callers that need a lookup and
    the deliveries based on it to happen atomically (routing) hold ``lock``
    around the whole sequence; it is re-entrant for that reason.
    """

    def __init__(self, capacity: int = MAX_CLIENTS) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = int(capacity)
        self.lock = threading.RLock()
        self.log = logging.getLogger("tcpchat.roster")
        # Insertion order is registration order; broadcasts follow it.
        self._by_conn: dict[Connection, ClientSession] = {}
        self._by_name: dict[str, Connection] = {}

    @property
    def count(self) -> int:
        with self.lock:
            return len(self._by_conn)

    def __len__(self) -> int:
        return self.count

    def __contains__(self, connection: object) -> bool:
        with self.lock:
            return connection in self._by_conn

    def register(self, connection: Connection, name: str) -> ClientSession:
        """
        Add a session for ``connection`` under ``name``.

        Raises:
            NameConflict: ``name`` is already registered.
            CapacityExceeded: every slot is occupied.
            ValueError: ``connection`` is already registered.
        """
        with self.lock:
            if name in self._by_name:
                raise NameConflict(f"name {name!r} already registered", reply=MSG_NAME_TAKEN)
            if connection in self._by_conn:
                raise ValueError(f"connection {connection.id} is already registered")
            if len(self._by_conn) >= self.capacity:
                raise CapacityExceeded(
                    f"roster full ({self.capacity} sessions)", reply=MSG_SERVER_FULL
                )

            sess = ClientSession(connection=connection, name=name)
            self._by_conn[connection] = sess
            self._by_name[name] = connection
            self.log.debug(
                "Registered name=%r conn_id=%s count=%s",
                name,
                connection.id,
                len(self._by_conn),
            )
            return sess

    def find_by_name(self, name: str) -> Connection | None:
        with self.lock:
            return self._by_name.get(name)

    def name_of(self, connection: Connection) -> str | None:
        with self.lock:
            sess = self._by_conn.get(connection)
            return sess.name if sess is not None else None

    def remove(self, connection: Connection) -> str | None:
        """Free the slot held by ``connection`` and return its name.

        Returns None, and changes nothing, if the connection is not registered.
        """
        with self.lock:
            sess = self._by_conn.pop(connection, None)
            if sess is None:
                return None
            self._by_name.pop(sess.name, None)
            self.log.debug(
                "Removed name=%r conn_id=%s count=%s",
                sess.name,
                connection.id,
                len(self._by_conn),
            )
            return sess.name

    def all_occupied(self) -> list[tuple[Connection, str]]:
        with self.lock:
            return [(s.connection, s.name) for s in self._by_conn.values()]

    def clear(self) -> list[Connection]:
        with self.lock:
            conns = list(self._by_conn.keys())
            self._by_conn.clear()
            self._by_name.clear()
            return conns
