from __future__ import annotations


class ChatError(Exception):
    """Base class for tcpchat errors.

    Errors that are reported to the peer carry the reply line in ``reply``.
    """

    reply: str | None = None

    def __init__(self, message: str = "", *, reply: str | None = None) -> None:
        super().__init__(message or reply or self.__class__.__name__)
        if reply is not None:
            self.reply = reply


class NameConflict(ChatError):
    """Registration rejected: the name is already in use."""


class CapacityExceeded(ChatError):
    """Registration rejected: every roster slot is occupied."""


class ProtocolError(ChatError):
    """The peer sent something the protocol does not allow here."""


class ConnectionClosed(ChatError):
    """The peer closed its end of the stream.

    ``pending`` holds any unterminated text that arrived before the close.
    """

    def __init__(self, message: str = "", *, pending: str | None = None) -> None:
        super().__init__(message)
        self.pending = pending
