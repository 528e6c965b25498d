"""
Command Executor.

`execute` sends a single verb and returns its Reply. The operation methods
(upload, download, delete, ...) run a fixed sequence of verbs on an already
authenticated Session and return an OperationOutcome: a failing step stops
the sequence and is reported, it is not raised.
"""

import logging
import os
from typing import Callable, Iterable, Optional, Union

from .connection import read_reply, send_command
from .data_connection import DataChannel
from .errors import (DataChannelError, FTPError, LocalFileError, ProtocolError,
                     RemoteOperationError, TransportError)
from .outcome import OperationOutcome
from .parser import Parser, Reply, ReplyCategory
from .session import Session, TransferMode

logger = logging.getLogger(__name__)

TRANSFER_VERBS = frozenset({"STOR", "RETR", "LIST", "NLST"})

# Replies meaning "this verb does not exist here", used to fall back to SITE CHMOD
NOT_IMPLEMENTED_CODES = frozenset({500, 502})

COMPLETION = (ReplyCategory.POSITIVE_COMPLETION,)
INTERMEDIATE = (ReplyCategory.POSITIVE_INTERMEDIATE,)

# Error descriptions, one per operation
UPLOAD_FAILED = "Unable to send file to remote server, does destination folder exist?"
LOCAL_FILE_MISSING = "Unable to find local file to send"
DOWNLOAD_FAILED = "Unable to download file, does local folder exist"
DELETE_FAILED = "Unable to delete remote file, have you checked permissions."
RENAME_FAILED = "Unable to rename/move file"
MKDIR_FAILED = "Unable to create remote directory"
RMDIR_FAILED = "Unable to delete remote directory"
CHMOD_FAILED = "Unable to modify permissions"
SIZE_FAILED = "Unable to find remote file"
DIR_CHECK_FAILED = "Unable to check remote directory"
LIST_FAILED = "Unable to read remote directory"
PASSIVE_FAILED = "Unable to set passive mode"
ACTIVE_FAILED = "Unable to open active data connection"

Args = Union[None, str, Iterable[str]]


class CommandExecutor:
    def __init__(self, parser: Optional[Parser] = None):
        self.parser = parser or Parser()

    # ----------------- single verb -----------------
    def execute(self, session: Session, verb: str, args: Args = None) -> Reply:
        """
        Sends `verb args` and returns the reply. Transfer verbs are refused here:
        they need an OPEN DataChannel (see `DataChannel.start_transfer`).
        """
        verb = verb.upper()
        if verb in TRANSFER_VERBS:
            raise ProtocolError(f"{verb} requires an open data channel")

        line = self._command_line(verb, args)
        with session.lock:
            send_command(session, line)
            reply = read_reply(session)
            if reply.is_preliminary:
                raise ProtocolError(f"Unexpected preliminary reply to {verb}: {reply.code} {reply.message}", reply)
        return reply

    @staticmethod
    def _command_line(verb: str, args: Args) -> str:
        if args is None:
            return verb
        if not isinstance(args, str):
            args = ' '.join(str(a) for a in args)
        return f"{verb} {args}" if args else verb

    def _step(self, outcome: OperationOutcome, session: Session, verb: str, args: Args = None,
              expect=COMPLETION) -> Reply:
        """Runs one step of a sequence; a reply outside `expect` raises RemoteOperationError."""
        reply = self.execute(session, verb, args)
        outcome.replies.append(reply)
        if reply.category not in expect:
            raise RemoteOperationError(verb.split(' ', 1)[0], reply)
        return reply

    # ----------------- sequencing -----------------
    def _run(self, operation: str, description: str, session: Session,
             body: Callable[[OperationOutcome], object]) -> OperationOutcome:
        outcome = OperationOutcome(operation)
        with session.lock:
            session.last_verb = None
            try:
                outcome.succeed(body(outcome))
                logger.debug(f"{operation} succeeded on {session.host}")
            except RemoteOperationError as e:
                outcome.fail(e, description)
                logger.warning(f"{operation} failed at {e.verb}: {e.reply.code} {e.reply.message}")
            except LocalFileError as e:
                outcome.fail(e, description, step="LOCAL")
                logger.warning(f"{operation} failed on the local side: {e}")
            except DataChannelError as e:
                outcome.fail(e, PASSIVE_FAILED if session.passive else ACTIVE_FAILED, step="PASV" if session.passive else "PORT")
                logger.warning(f"{operation} could not open a data channel: {e}")
            except (TransportError, ProtocolError) as e:
                outcome.fail(e, description, step=session.last_verb)
                logger.error(f"{operation} aborted on {session.host} at {session.last_verb}: {e}")
                if session.awaiting_reply:
                    # The control connection is out of step
                    session.release()
        return outcome

    def _ensure_type(self, outcome: OperationOutcome, session: Session, mode: TransferMode):
        if session.current_type is mode:
            return
        self._step(outcome, session, "TYPE", mode.value)
        session.current_type = mode

    def _transfer(self, outcome: OperationOutcome, session: Session, command: str,
                  handle_data: Callable[[DataChannel], object]):
        """
        Negotiates a data channel, sends the transfer verb and, once the
        server answers 1xx, hands the channel to `handle_data`. The 226/250
        completion reply is read after the data socket reaches EOF.
        """
        verb = command.split(' ', 1)[0]
        channel = DataChannel(session, self.parser)
        try:
            channel.negotiate()
            reply = channel.start_transfer(command)
            if reply.is_negative:
                raise RemoteOperationError(verb, reply)
            if reply.category is ReplyCategory.POSITIVE_COMPLETION:
                # Nothing to transfer
                channel.close()
                return handle_data(None)
            if not reply.is_preliminary:
                raise ProtocolError(f"Unexpected reply to {verb}: {reply.code} {reply.message}", reply)

            result = handle_data(channel)
            final = channel.finish()
            if final.category is not ReplyCategory.POSITIVE_COMPLETION:
                raise RemoteOperationError(verb, final)
            return result
        except FTPError:
            channel.close()
            self._resync(session, channel)
            raise
        finally:
            outcome.replies.extend(channel.replies)

    def _resync(self, session: Session, channel: DataChannel):
        """After an aborted transfer, consume the server's closing reply (426/451...)."""
        if not session.is_open or not session.awaiting_reply:
            return
        try:
            channel.replies.append(read_reply(session))
        except FTPError as e:
            logger.error(f"Lost control connection while aborting transfer: {e}")
            session.release()

    # ----------------- operations -----------------
    def upload(self, session: Session, local_path: str, remote_path: str,
               mode: Optional[TransferMode] = None) -> OperationOutcome:
        mode = TransferMode.from_value(mode or session.transfer_mode)
        missing = check_local_source(local_path)
        if missing is not None:
            return missing

        def body(outcome):
            try:
                source = open(local_path, 'rb')
            except OSError as e:
                raise LocalFileError(f"Cannot read {local_path}: {e}") from e
            with source:
                self._ensure_type(outcome, session, mode)
                return self._transfer(outcome, session, f"STOR {remote_path}",
                                      lambda channel: channel.send_from(source, mode) if channel else 0)

        return self._run("upload", UPLOAD_FAILED, session, body)

    def download(self, session: Session, remote_path: str, local_path: str,
                 mode: Optional[TransferMode] = None) -> OperationOutcome:
        mode = TransferMode.from_value(mode or session.transfer_mode)

        def receive(channel):
            try:
                sink = open(local_path, 'wb')
            except OSError as e:
                raise LocalFileError(f"Cannot write {local_path}: {e}") from e
            with sink:
                return channel.receive_into(sink, mode) if channel else 0

        def body(outcome):
            self._ensure_type(outcome, session, mode)
            return self._transfer(outcome, session, f"RETR {remote_path}", receive)

        return self._run("download", DOWNLOAD_FAILED, session, body)

    def delete(self, session: Session, remote_path: str) -> OperationOutcome:
        def body(outcome):
            self._step(outcome, session, "DELE", remote_path)
            return True

        return self._run("delete", DELETE_FAILED, session, body)

    def rename(self, session: Session, old_path: str, new_path: str) -> OperationOutcome:
        def body(outcome):
            self._step(outcome, session, "RNFR", old_path, expect=INTERMEDIATE)
            self._step(outcome, session, "RNTO", new_path)
            return True

        return self._run("rename", RENAME_FAILED, session, body)

    def make_directory(self, session: Session, path: str) -> OperationOutcome:
        def body(outcome):
            reply = self._step(outcome, session, "MKD", path)
            return parse_quoted_path(reply.message) or path

        return self._run("make_directory", MKDIR_FAILED, session, body)

    def remove_directory(self, session: Session, path: str) -> OperationOutcome:
        missing = check_directory_path(path)
        if missing is not None:
            return missing

        def body(outcome):
            self._step(outcome, session, "RMD", path)
            return True

        return self._run("remove_directory", RMDIR_FAILED, session, body)

    def set_permissions(self, session: Session, path: str, mode: int = 0o644) -> OperationOutcome:
        """
        CHMOD is not part of RFC 959. The dedicated verb is tried first and
        SITE CHMOD used when the server does not know it; whichever works is
        remembered on the session.
        """
        argument = f"{mode:o} {path}"

        def body(outcome):
            verb = session.chmod_verb
            if verb is None:
                reply = self.execute(session, "CHMOD", argument)
                outcome.replies.append(reply)
                if reply.category is ReplyCategory.POSITIVE_COMPLETION:
                    session.chmod_verb = "CHMOD"
                    return True
                if reply.code not in NOT_IMPLEMENTED_CODES:
                    raise RemoteOperationError("CHMOD", reply)
                verb = "SITE CHMOD"
                logger.debug(f"{session.host} does not implement CHMOD, falling back to SITE CHMOD")

            if verb == "SITE CHMOD":
                self._step(outcome, session, "SITE", f"CHMOD {argument}")
            else:
                self._step(outcome, session, "CHMOD", argument)
            session.chmod_verb = verb
            return True

        return self._run("set_permissions", CHMOD_FAILED, session, body)

    def file_size(self, session: Session, path: str) -> OperationOutcome:
        def body(outcome):
            reply = self._step(outcome, session, "SIZE", path)
            try:
                return int(reply.message.strip().split()[0])
            except (ValueError, IndexError) as e:
                raise ProtocolError(f"Malformed SIZE reply: {reply.message!r}", reply) from e

        return self._run("file_size", SIZE_FAILED, session, body)

    def directory_exists(self, session: Session, path: str) -> OperationOutcome:
        """
        Tries to CWD into `path`. The previous working directory is restored
        afterwards so the session can keep being used.
        """
        def body(outcome):
            pwd = self._step(outcome, session, "PWD")
            previous = parse_quoted_path(pwd.message)
            if previous is None:
                raise ProtocolError(f"Malformed PWD reply: {pwd.message!r}", pwd)

            reply = self.execute(session, "CWD", path)
            outcome.replies.append(reply)
            if reply.category is ReplyCategory.PERMANENT_NEGATIVE:
                return False
            if reply.category is not ReplyCategory.POSITIVE_COMPLETION:
                raise RemoteOperationError("CWD", reply)

            self._step(outcome, session, "CWD", previous)
            return True

        return self._run("directory_exists", DIR_CHECK_FAILED, session, body)

    def list_directory(self, session: Session, path: str = "", detailed: bool = False) -> OperationOutcome:
        """NLST names by default, raw LIST lines when `detailed`."""
        verb = "LIST" if detailed else "NLST"
        command = f"{verb} {path}".strip()

        def receive(channel):
            if channel is None:
                return []
            buffer = _ListingBuffer()
            channel.receive_into(buffer, TransferMode.TEXT)
            return buffer.entries()

        def body(outcome):
            self._ensure_type(outcome, session, TransferMode.TEXT)
            return self._transfer(outcome, session, command, receive)

        return self._run("list_directory", LIST_FAILED, session, body)


class _ListingBuffer:
    """Minimal writable sink collecting listing bytes."""

    def __init__(self):
        self.chunks = []

    def write(self, data: bytes):
        self.chunks.append(data)
        return len(data)

    def entries(self):
        text = b''.join(self.chunks).decode('utf-8', errors='replace')
        return [line.strip() for line in text.splitlines() if line.strip()]


def parse_quoted_path(message: str) -> Optional[str]:
    """
    Extracts the quoted path at the start of a 257 reply. A quote inside
    the path is sent doubled, per RFC 959.
    """
    if not message.startswith('"'):
        return None
    path = []
    i = 1
    while i < len(message):
        ch = message[i]
        if ch == '"':
            if message[i + 1:i + 2] == '"':
                path.append('"')
                i += 2
                continue
            return ''.join(path)
        path.append(ch)
        i += 1
    return None


def check_local_source(local_path: str) -> Optional[OperationOutcome]:
    """Failed upload outcome when `local_path` is not a readable file, else None."""
    if os.path.isfile(local_path):
        return None
    logger.warning(f"Local file not found: {local_path}")
    error = LocalFileError(f"Local file not found: {local_path}")
    return OperationOutcome("upload").fail(error, LOCAL_FILE_MISSING, step="LOCAL")


def check_directory_path(path: str) -> Optional[OperationOutcome]:
    """Failed remove_directory outcome when no path was given, else None. RMD is never sent bare."""
    if path and path.strip():
        return None
    error = ProtocolError("remove_directory needs an explicit path")
    return OperationOutcome("remove_directory").fail(error, RMDIR_FAILED, step="RMD")
