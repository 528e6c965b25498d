"""
Data Channel Negotiator.

A DataChannel carries the bytes of exactly one transfer or listing. It is
negotiated over the control connection (PASV or PORT), used once and closed.
"""

import logging
import socket
from enum import Enum
from typing import BinaryIO, Optional

from .connection import read_reply, send_command
from .errors import DataChannelError, ProtocolError, TransportError
from .parser import Parser, Reply
from .session import Session, TransferMode

logger = logging.getLogger(__name__)

BUFFER_SIZE = 65536


class ChannelState(Enum):
    IDLE = "IDLE"
    NEGOTIATING = "NEGOTIATING"
    OPEN = "OPEN"
    TRANSFERRING = "TRANSFERRING"
    CLOSED = "CLOSED"


class DataChannel:
    def __init__(self, session: Session, parser: Optional[Parser] = None):
        """
        Maneja el canal de datos de una sola transferencia, en modo pasivo
        (PASV, conectamos al servidor) o activo (PORT, el servidor conecta).
        """
        self.session = session
        self.parser = parser or Parser()
        self.passive = session.passive
        self.state = ChannelState.IDLE
        self.replies = []

        self.address = None
        self.data_socket: Optional[socket.socket] = None
        self.listener: Optional[socket.socket] = None

    # ----------------- negotiation -----------------
    def negotiate(self) -> "DataChannel":
        """
        Runs PASV or PORT. On any failure the channel goes straight to CLOSED
        and DataChannelError is raised; the control connection stays usable.
        """
        if self.state is not ChannelState.IDLE:
            raise ProtocolError(f"Data channel already negotiated (state={self.state.value})")

        self.state = ChannelState.NEGOTIATING
        try:
            if self.passive:
                self._negotiate_passive()
            else:
                self._negotiate_active()
        except DataChannelError:
            self.close()
            raise
        self.state = ChannelState.OPEN
        return self

    def _negotiate_passive(self):
        reply = self._command("PASV")
        if reply.code != 227:
            raise DataChannelError(f"PASV failed: {reply.code} {reply.message}", reply)
        try:
            ip, port = self.parser.parse_pasv_response(reply.message)
        except ValueError as e:
            raise DataChannelError(f"Could not parse PASV reply: {reply.message}", reply) from e

        self.address = (ip, port)
        try:
            self.data_socket = socket.create_connection((ip, port), timeout=self.session.timeout)
        except OSError as e:
            logger.error(f"✗ Data connection to {ip}:{port} failed - {e}")
            raise DataChannelError(f"Cannot open data connection to {ip}:{port}: {e}", reply) from e
        logger.debug(f"[DATA] Connected to {ip}:{port}")

    def _negotiate_active(self):
        try:
            local_ip = self.session.local_address()
            listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            listener.bind((local_ip, 0))
            listener.listen(1)
            listener.settimeout(self.session.timeout)
        except OSError as e:
            raise DataChannelError(f"Cannot create listener for active mode: {e}") from e

        self.listener = listener
        self.address = listener.getsockname()[:2]
        argument = self.parser.format_port_argument(*self.address)

        reply = self._command(f"PORT {argument}")
        if reply.category.value != 2:
            raise DataChannelError(f"PORT failed: {reply.code} {reply.message}", reply)
        logger.debug(f"[DATA] Listening on {self.address[0]}:{self.address[1]}")

    def _command(self, command: str) -> Reply:
        try:
            send_command(self.session, command)
            reply = read_reply(self.session)
        except TransportError:
            self.close()
            raise
        self.replies.append(reply)
        return reply

    # ----------------- transfer -----------------
    def start_transfer(self, command: str) -> Reply:
        """
        Sends the transfer verb (STOR, RETR, LIST, NLST) and returns its first
        reply. On 1xx the channel becomes TRANSFERRING; in active mode this is
        also when the server's connection is accepted.
        """
        if self.state is not ChannelState.OPEN:
            raise ProtocolError(f"Cannot send {command.split(' ', 1)[0]}: data channel is {self.state.value}, not OPEN")

        send_command(self.session, command)
        reply = read_reply(self.session)
        self.replies.append(reply)

        if reply.is_preliminary:
            if self.listener is not None:
                self._accept()
            self.state = ChannelState.TRANSFERRING
        return reply

    def _accept(self):
        try:
            conn, addr = self.listener.accept()
        except OSError as e:
            raise DataChannelError(f"Server did not open the data connection: {e}") from e
        finally:
            self.listener.close()
            self.listener = None
        conn.settimeout(self.session.timeout)
        self.data_socket = conn
        logger.debug(f"[DATA] Accepted connection from {addr[0]}:{addr[1]}")

    def finish(self) -> Reply:
        """Closes the data socket and reads the completion reply (226/250)."""
        self.close()
        reply = read_reply(self.session)
        self.replies.append(reply)
        return reply

    def send_from(self, source: BinaryIO, mode: TransferMode = TransferMode.BINARY) -> int:
        """Envía el contenido de `source` al servidor. Devuelve los bytes escritos en el socket."""
        self._require_transferring()
        total = 0
        pending_cr = False
        try:
            while chunk := source.read(BUFFER_SIZE):
                if mode is TransferMode.TEXT:
                    chunk, pending_cr = to_network_newlines(chunk, pending_cr)
                self.data_socket.sendall(chunk)
                total += len(chunk)
            if pending_cr:
                self.data_socket.sendall(b"\r")
                total += 1
        except OSError as e:
            raise TransportError(f"Data connection failed during upload: {e}") from e
        logger.debug(f"[DATA] Sent {total} bytes")
        return total

    def receive_into(self, sink: BinaryIO, mode: TransferMode = TransferMode.BINARY) -> int:
        """Recibe datos hasta EOF y los escribe en `sink`. Devuelve los bytes leídos del socket."""
        self._require_transferring()
        total = 0
        pending_cr = False
        try:
            while True:
                data = self.data_socket.recv(BUFFER_SIZE)
                if not data:
                    break
                total += len(data)
                if mode is TransferMode.TEXT:
                    data, pending_cr = from_network_newlines(data, pending_cr)
                sink.write(data)
        except OSError as e:
            raise TransportError(f"Data connection failed during download: {e}") from e
        if pending_cr:
            sink.write(b'\r')
        logger.debug(f"[DATA] Received {total} bytes")
        return total

    def _require_transferring(self):
        if self.state is not ChannelState.TRANSFERRING or self.data_socket is None:
            raise ProtocolError(f"Data channel is {self.state.value}, not TRANSFERRING")

    # ----------------- teardown -----------------
    def close(self):
        """Cierra la conexión de datos. Se puede llamar más de una vez."""
        for sock in (self.data_socket, self.listener):
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass
        if self.data_socket is not None and self.address:
            logger.debug(f"[DATA] Disconnected from {self.address[0]}:{self.address[1]}")
        self.data_socket = None
        self.listener = None
        self.state = ChannelState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def open_data_channel(session: Session, parser: Optional[Parser] = None) -> DataChannel:
    """Negotiates a channel for the next transfer on `session`."""
    return DataChannel(session, parser).negotiate()


def to_network_newlines(chunk: bytes, pending_cr: bool = False):
    """
    Local line endings to CRLF. Existing CRLF pairs are left as they are.
    A trailing CR is held back like in `from_network_newlines`, so the
    result does not depend on where the file was split into chunks.
    """
    if pending_cr:
        chunk = b'\r' + chunk
    pending_cr = chunk.endswith(b'\r')
    if pending_cr:
        chunk = chunk[:-1]
    return chunk.replace(b'\r\n', b'\n').replace(b'\n', b'\r\n'), pending_cr


def from_network_newlines(chunk: bytes, pending_cr: bool = False):
    """
    CRLF to LF. A CR at the very end of `chunk` may be the first half of a
    pair split across reads, so it is held back and reported through the
    second return value.
    """
    if pending_cr:
        chunk = b'\r' + chunk
    pending_cr = chunk.endswith(b'\r')
    if pending_cr:
        chunk = chunk[:-1]
    return chunk.replace(b'\r\n', b'\n'), pending_cr
