import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple

from .errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)

# Same limit ftplib applies to a single control line
MAX_LINE_LENGTH = 8192


class ReplyCategory(Enum):
    POSITIVE_PRELIMINARY = 1
    POSITIVE_COMPLETION = 2
    POSITIVE_INTERMEDIATE = 3
    TRANSIENT_NEGATIVE = 4
    PERMANENT_NEGATIVE = 5


@dataclass(frozen=True)
class Reply:
    """A parsed server response. Immutable once built by the Parser."""
    code: int
    lines: Tuple[str, ...]

    @property
    def category(self) -> ReplyCategory:
        return ReplyCategory(self.code // 100)

    @property
    def message(self) -> str:
        """Reply text without the code prefix of the first and last lines."""
        body = list(self.lines)
        body[0] = body[0][4:]
        if len(body) > 1 and body[-1].startswith(f"{self.code} "):
            body[-1] = body[-1][4:]
        return "\n".join(body)

    @property
    def is_preliminary(self) -> bool:
        return self.category is ReplyCategory.POSITIVE_PRELIMINARY

    @property
    def is_intermediate(self) -> bool:
        return self.category is ReplyCategory.POSITIVE_INTERMEDIATE

    @property
    def is_positive(self) -> bool:
        return self.code < 400

    @property
    def is_negative(self) -> bool:
        return self.code >= 400

    def __str__(self) -> str:
        return "\n".join(self.lines)


class Parser:
    """Turns raw control-connection text into Reply values."""

    def read_reply(self, readline: Callable[[], bytes]) -> Reply:
        """
        Reads one complete reply using `readline`, which must return one
        CRLF-terminated line as bytes (b'' on EOF).

        A multi-line reply starts with 'NNN-' and runs until a line starting
        with the same 'NNN ' is seen; everything in between is kept verbatim.
        """
        first = self._read_line(readline)
        code = self._parse_code(first)
        lines = [first]

        if first[3:4] == '-':
            terminator = f"{code} "
            while True:
                line = self._read_line(readline)
                lines.append(line)
                if line.startswith(terminator) or line == str(code):
                    break

        reply = Reply(code, tuple(lines))
        logger.debug(f"Parsed reply: code={reply.code}, category={reply.category.name}, message={reply.message[:50]}")
        return reply

    def parse_data(self, data: str) -> Reply:
        """Parses a reply that was already received in full (e.g. from a log)."""
        chunks = data.encode('utf-8').splitlines(keepends=True)
        it = iter(chunks)
        return self.read_reply(lambda: next(it, b''))

    def parse_pasv_response(self, message: str) -> Tuple[str, int]:
        """Parses the PASV response to extract IP and port."""
        try:
            start = message.index('(') + 1
            end = message.index(')', start)
            parts = [p.strip() for p in message[start:end].split(',')]
            if len(parts) != 6:
                raise ValueError(f"expected 6 fields, got {len(parts)}")
            numbers = [int(p) for p in parts]
            if any(n < 0 or n > 255 for n in numbers):
                raise ValueError("field out of range")
            ip = '.'.join(parts[:4])
            port = (numbers[4] << 8) + numbers[5]
            logger.debug(f"PASV parsed: {ip}:{port}")
            return ip, port
        except (ValueError, IndexError) as e:
            logger.error(f"Failed to parse PASV response: {message}")
            raise ValueError("Invalid PASV response format") from e

    def format_port_argument(self, ip: str, port: int) -> str:
        """Encodes an IPv4 address and port as the h1,h2,h3,h4,p1,p2 PORT argument."""
        octets = ip.split('.')
        if len(octets) != 4:
            raise ValueError(f"PORT needs an IPv4 address, got {ip!r}")
        port_high, port_low = divmod(port, 256)
        return ','.join(octets + [str(port_high), str(port_low)])

    @staticmethod
    def _read_line(readline: Callable[[], bytes]) -> str:
        try:
            raw = readline()
        except OSError as e:
            raise TransportError(f"Failed reading reply: {e}") from e
        if not raw:
            raise TransportError("Server closed connection while reading reply")
        if len(raw) > MAX_LINE_LENGTH:
            raise ProtocolError(f"Reply line exceeds {MAX_LINE_LENGTH} bytes")
        return raw.decode('utf-8', errors='replace').rstrip('\r\n')

    @staticmethod
    def _parse_code(line: str) -> int:
        code = line[:3]
        if len(code) != 3 or not code.isdigit() or line[3:4] not in ('', ' ', '-') or code[0] not in '12345':
            logger.error(f"Invalid FTP response format: {line!r}")
            raise ProtocolError(f"Malformed reply: {line!r}")
        return int(code)
