import logging
import threading
from contextlib import contextmanager
from typing import Callable, Optional

from .commands import CommandExecutor, check_directory_path, check_local_source
from .config import ClientConfig
from .connection import authenticate, close, connect
from .errors import AuthError, FTPConnectionError, FTPError
from .outcome import OperationOutcome
from .session import DEFAULT_PORT, DEFAULT_TIMEOUT, Session, TransferMode

logger = logging.getLogger(__name__)

CONNECT_FAILED = "Unable to connect to remote server"
AUTH_FAILED = "Connected to server but unable to authenticate user"


class FTPClient:
    """
    High level FTP client.

    Used on its own, every call opens a connection, logs in, performs one
    action and closes again. Inside a ``with client:`` block (or between
    ``open()`` and ``close()``) all calls share one authenticated session.

    Every method returns an OperationOutcome; failures are reported there,
    never raised.
    """

    def __init__(self, host: str, username: str = "anonymous", password: str = "",
                 port: int = DEFAULT_PORT, passive: bool = False, timeout: float = DEFAULT_TIMEOUT,
                 transfer_mode=TransferMode.BINARY, account: Optional[str] = None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.account = account
        self.passive = passive
        self.timeout = timeout
        self.transfer_mode = TransferMode.from_value(transfer_mode)

        self.executor = CommandExecutor()
        self.session: Optional[Session] = None
        # True between open() and close(): calls share self.session
        self._shared = False
        self.lock = threading.RLock()
        # CHMOD capability learnt from earlier sessions to this server
        self._chmod_verb: Optional[str] = None

    @classmethod
    def from_config(cls, config: ClientConfig) -> "FTPClient":
        return cls(config.host, username=config.username, password=config.password, port=config.port,
                   passive=config.passive, timeout=config.timeout)

    # ----------------- session lifecycle -----------------
    def open(self) -> Session:
        """Opens and authenticates a session kept until `close()`."""
        with self.lock:
            if self.session is not None and self.session.is_open:
                return self.session
            self.session = self._login()
            self._shared = True
            return self.session

    def close(self):
        with self.lock:
            self._shared = False
            if self.session is not None:
                self._remember(self.session)
                close(self.session)
                self.session = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _login(self) -> Session:
        session = connect(self.host, self.port, timeout=self.timeout, passive=self.passive,
                          transfer_mode=self.transfer_mode)
        session.chmod_verb = self._chmod_verb
        try:
            authenticate(session, self.username, self.password, account=self.account)
        except FTPError:
            close(session)
            raise
        return session

    def _remember(self, session: Session):
        if session.chmod_verb is not None:
            self._chmod_verb = session.chmod_verb

    @contextmanager
    def _session_for(self, operation: str):
        """Yields the shared session, or a fresh one that is closed afterwards."""
        if self._shared:
            if self.session is None or not self.session.is_open:
                logger.info(f"Reconnecting to {self.host}:{self.port} for {operation}")
                if self.session is not None:
                    self._remember(self.session)
                self.session = self._login()
            yield self.session
            if not self.session.is_open:
                logger.warning(f"Session to {self.host} was lost during {operation}")
            return

        session = self._login()
        try:
            yield session
        finally:
            self._remember(session)
            close(session)

    def _call(self, operation: str, action: Callable[[Session], OperationOutcome]) -> OperationOutcome:
        with self.lock:
            try:
                with self._session_for(operation) as session:
                    return action(session)
            except AuthError as e:
                logger.warning(f"{operation}: login to {self.host} failed - {e}")
                return OperationOutcome(operation).fail(e, AUTH_FAILED, step="LOGIN")
            except FTPError as e:
                logger.warning(f"{operation}: cannot reach {self.host}:{self.port} - {e}")
                step = "CONNECT" if isinstance(e, FTPConnectionError) else "LOGIN"
                return OperationOutcome(operation).fail(e, CONNECT_FAILED, step=step)

    # ----------------- operations -----------------
    def upload(self, local_path: str, remote_path: str, mode=None) -> OperationOutcome:
        missing = check_local_source(local_path)
        if missing is not None:
            return missing
        return self._call("upload", lambda s: self.executor.upload(s, local_path, remote_path, mode))

    def download(self, remote_path: str, local_path: str, mode=None) -> OperationOutcome:
        return self._call("download", lambda s: self.executor.download(s, remote_path, local_path, mode))

    def delete(self, remote_path: str) -> OperationOutcome:
        return self._call("delete", lambda s: self.executor.delete(s, remote_path))

    def rename(self, old_path: str, new_path: str) -> OperationOutcome:
        return self._call("rename", lambda s: self.executor.rename(s, old_path, new_path))

    def make_directory(self, path: str) -> OperationOutcome:
        return self._call("make_directory", lambda s: self.executor.make_directory(s, path))

    def remove_directory(self, path: str) -> OperationOutcome:
        missing = check_directory_path(path)
        if missing is not None:
            return missing
        return self._call("remove_directory", lambda s: self.executor.remove_directory(s, path))

    def set_permissions(self, path: str, mode: int = 0o644) -> OperationOutcome:
        return self._call("set_permissions", lambda s: self.executor.set_permissions(s, path, mode))

    def file_size(self, path: str) -> OperationOutcome:
        """Size in bytes as payload; `outcome.not_found` when the server says 550."""
        return self._call("file_size", lambda s: self.executor.file_size(s, path))

    def directory_exists(self, path: str) -> OperationOutcome:
        return self._call("directory_exists", lambda s: self.executor.directory_exists(s, path))

    def list_directory(self, path: str = "", detailed: bool = False) -> OperationOutcome:
        return self._call("list_directory", lambda s: self.executor.list_directory(s, path, detailed))

    def __str__(self):
        mode = "passive" if self.passive else "active"
        return f"FTPClient({self.username}@{self.host}:{self.port}, {mode})"
