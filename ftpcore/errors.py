"""
Error taxonomy for the FTP client core.

Every error raised by the core derives from FTPError so callers can catch the
whole family at once. Errors that were caused by a specific server reply keep
it on the ``reply`` attribute.
"""


class FTPError(Exception):
    """Base class for all client core errors."""

    def __init__(self, message: str, reply=None):
        super().__init__(message)
        self.message = message
        self.reply = reply


class FTPConnectionError(FTPError, ConnectionError):
    """The control connection could not be opened or the greeting was rejected."""


class AuthError(FTPError):
    """Credentials rejected or the USER/PASS sequence was broken."""


class ProtocolError(FTPError):
    """Malformed reply framing or a command issued out of sequence."""


class TransportError(FTPError):
    """Socket read/write failure in the middle of an operation."""


class DataChannelError(FTPError):
    """Active or passive data channel negotiation failed."""


class RemoteOperationError(FTPError):
    """The server answered a verb with a negative reply."""

    def __init__(self, verb: str, reply):
        super().__init__(f"{verb} failed: {reply.code} {reply.message}", reply)
        self.verb = verb

    @property
    def code(self) -> int:
        return self.reply.code


class LocalFileError(FTPError):
    """The local side of a transfer could not be read or written."""
