"""
FTP client core.
Includes the control connection manager, reply parser, data channel
negotiator, command executor and the FTPClient facade.
"""

from .client import FTPClient
from .commands import CommandExecutor
from .config import ClientConfig
from .connection import authenticate, close, connect, read_reply, send_command
from .data_connection import ChannelState, DataChannel, open_data_channel
from .errors import (AuthError, DataChannelError, FTPConnectionError, FTPError, LocalFileError,
                     ProtocolError, RemoteOperationError, TransportError)
from .outcome import OperationOutcome
from .parser import Parser, Reply, ReplyCategory
from .session import Session, SessionState, TransferMode

__version__ = "0.1.0"

__all__ = [
    "FTPClient",
    "CommandExecutor",
    "ClientConfig",
    "connect",
    "authenticate",
    "close",
    "send_command",
    "read_reply",
    "DataChannel",
    "ChannelState",
    "open_data_channel",
    "FTPError",
    "FTPConnectionError",
    "AuthError",
    "ProtocolError",
    "TransportError",
    "DataChannelError",
    "RemoteOperationError",
    "LocalFileError",
    "OperationOutcome",
    "Parser",
    "Reply",
    "ReplyCategory",
    "Session",
    "SessionState",
    "TransferMode",
]
