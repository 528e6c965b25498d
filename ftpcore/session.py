import logging
import socket
import threading
from enum import Enum
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

DEFAULT_PORT = 21
DEFAULT_TIMEOUT = 30.0


class SessionState(Enum):
    CLOSED = "CLOSED"
    CONNECTED = "CONNECTED"
    AUTHENTICATED = "AUTHENTICATED"


class TransferMode(Enum):
    BINARY = "I"
    TEXT = "A"

    @classmethod
    def from_value(cls, value) -> "TransferMode":
        """Accepts a TransferMode, a TYPE code ('I'/'A') or a name ('binary'/'text')."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for mode in cls:
            if text.upper() == mode.value or text.lower() == mode.name.lower():
                return mode
        if text.lower() == 'ascii':
            return cls.TEXT
        raise ValueError(f"Unknown transfer mode: {value!r}")


class Session:
    """
    One control connection to an FTP server.

    The session is owned by whoever opened it. The lock serialises commands
    so replies are always consumed in the order the commands were written;
    `awaiting_reply` is set between writing a command and reading its final
    reply.
    """

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT,
                 passive: bool = False, transfer_mode: TransferMode = TransferMode.BINARY):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.passive = passive
        self.transfer_mode = TransferMode.from_value(transfer_mode)

        self.username: Optional[str] = None
        self.state = SessionState.CLOSED
        self.welcome = None

        self.sock: Optional[socket.socket] = None
        self.reader: Optional[BinaryIO] = None
        self.lock = threading.RLock()
        self.awaiting_reply = False

        # TYPE last accepted by the server, None until the first TYPE
        self.current_type: Optional[TransferMode] = None
        # Verb of the last command written, reported as the failing step
        self.last_verb: Optional[str] = None
        # Verb that worked for CHMOD on this server ('CHMOD' or 'SITE CHMOD')
        self.chmod_verb: Optional[str] = None

    # ----------------- state -----------------
    @property
    def is_open(self) -> bool:
        return self.state is not SessionState.CLOSED and self.sock is not None

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def attach(self, sock: socket.socket):
        """Binds a freshly connected control socket to the session."""
        with self.lock:
            self.sock = sock
            self.reader = sock.makefile('rb')
            self.state = SessionState.CONNECTED
            self.awaiting_reply = True  # the greeting
            logger.debug(f"Session attached to {self.host}:{self.port}")

    def local_address(self) -> str:
        """IP address of our end of the control connection."""
        return self.sock.getsockname()[0]

    def release(self):
        """Drops the socket without talking to the server."""
        with self.lock:
            if self.reader is not None:
                try:
                    self.reader.close()
                except OSError:
                    pass
            if self.sock is not None:
                try:
                    self.sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                self.sock.close()
            self.sock = None
            self.reader = None
            self.state = SessionState.CLOSED
            self.awaiting_reply = False
            self.current_type = None

    # ----------------- context manager -----------------
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        from .connection import close
        close(self)
        return False

    def __str__(self):
        return f"Session(host={self.host}:{self.port}, user={self.username}, state={self.state.value})"

    def __repr__(self):
        return self.__str__()
