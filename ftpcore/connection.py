"""
Control Connection Manager.

Opens and closes the TCP control channel, performs the login handshake and
moves commands and replies across it in strict lock-step order.
"""

import logging
import socket
from typing import Optional

from .errors import AuthError, FTPConnectionError, FTPError, ProtocolError, TransportError
from .parser import MAX_LINE_LENGTH, Parser, Reply
from .session import DEFAULT_PORT, DEFAULT_TIMEOUT, Session, SessionState

logger = logging.getLogger(__name__)

_parser = Parser()


def connect(host: str, port: int = DEFAULT_PORT, timeout: float = DEFAULT_TIMEOUT, **session_options) -> Session:
    """Opens the control connection and reads the server greeting."""
    session = Session(host, port, timeout=timeout, **session_options)
    logger.info(f"Connecting to {host}:{port} (timeout={timeout}s)")
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        logger.error(f"✗ Failed to connect to {host}:{port} - {e}")
        raise FTPConnectionError(f"Failed to connect to {host}:{port} - {e}") from e

    session.attach(sock)
    try:
        reply = read_reply(session)
        # 120: service ready in nnn minutes, the real greeting follows
        while reply.is_preliminary:
            reply = read_reply(session)
    except FTPError as e:
        session.release()
        logger.error(f"✗ No greeting from {host}:{port} - {e}")
        raise FTPConnectionError(f"No greeting from {host}:{port} - {e}") from e

    if reply.code != 220:
        session.release()
        logger.error(f"✗ Server {host}:{port} refused the connection: {reply.code} {reply.message}")
        raise FTPConnectionError(f"Server refused connection: {reply.code} {reply.message}", reply)

    session.welcome = reply
    logger.info(f"✓ Connected to {host}:{port}")
    return session


def authenticate(session: Session, username: str, password: str, account: Optional[str] = None) -> Session:
    """
    Runs the USER/PASS handshake.

    A 230 to USER logs in directly. A 331/332 must be answered with PASS before
    anything else is sent; a 332 to PASS needs ACCT.
    """
    if session.state is not SessionState.CONNECTED:
        raise ProtocolError(f"Cannot authenticate a session in state {session.state.value}")

    with session.lock:
        reply = _exchange(session, f"USER {username}")
        if reply.is_intermediate:
            reply = _exchange(session, f"PASS {password}")
            if reply.code == 332:
                if account is None:
                    raise AuthError("Server requires an account (ACCT) to log in", reply)
                reply = _exchange(session, f"ACCT {account}")

        if reply.category.value != 2:
            logger.warning(f"✗ Login failed for {username}: {reply.code} {reply.message}")
            raise AuthError(f"Login failed: {reply.code} {reply.message}", reply)

        session.username = username
        session.state = SessionState.AUTHENTICATED
        logger.info(f"✓ Logged in as {username} on {session.host}:{session.port}")
    return session


def close(session: Session):
    """Sends QUIT and releases the socket. Closing a closed session does nothing."""
    with session.lock:
        if not session.is_open:
            return

        if session.awaiting_reply:
            logger.warning(f"Closing {session.host}:{session.port} with a reply pending, skipping QUIT")
        else:
            try:
                reply = _exchange(session, "QUIT")
                logger.debug(f"Server final reply: {reply.code} {reply.message}")
            except FTPError as e:
                logger.warning(f"Error during QUIT on {session.host}:{session.port}: {e}")

        session.release()
        logger.info(f"✓ Disconnected from {session.host}:{session.port}")


def send_command(session: Session, command: str):
    """Writes one CRLF-terminated command line."""
    if not session.is_open:
        raise ProtocolError("No connection established.")
    if '\r' in command or '\n' in command:
        raise ProtocolError(f"Command contains a line break: {command!r}")

    with session.lock:
        if session.awaiting_reply:
            raise ProtocolError(f"Cannot send {_verb_of(command)} while a previous reply is unread")
        logger.debug(f"→ SEND: {_mask(command)}")
        session.last_verb = _verb_of(command)
        try:
            session.sock.sendall((command + '\r\n').encode('utf-8'))
        except OSError as e:
            logger.error(f"Failed to send {_verb_of(command)} to {session.host}:{session.port} - {e}")
            # the control connection is gone
            session.release()
            raise TransportError(f"Failed to send {_verb_of(command)}: {e}") from e
        session.awaiting_reply = True


def read_reply(session: Session) -> Reply:
    """
    Reads the next reply. A 1xx reply leaves the session waiting for the
    final reply of the same command.
    """
    if not session.is_open:
        raise ProtocolError("No connection established.")

    with session.lock:
        if not session.awaiting_reply:
            raise ProtocolError("No reply is pending on this connection")
        reply = _parser.read_reply(lambda: session.reader.readline(MAX_LINE_LENGTH + 1))
        session.awaiting_reply = reply.is_preliminary
        logger.debug(f"← RECV: {reply}")
        return reply


def _exchange(session: Session, command: str) -> Reply:
    with session.lock:
        send_command(session, command)
        return read_reply(session)


def _verb_of(command: str) -> str:
    return command.split(' ', 1)[0].upper()


def _mask(command: str) -> str:
    if _verb_of(command) == 'PASS':
        return 'PASS ****'
    return command
