import io

import pytest

from ftpcore.errors import ProtocolError, TransportError
from ftpcore.parser import MAX_LINE_LENGTH, Parser, Reply, ReplyCategory


@pytest.fixture
def parser():
    return Parser()


def read(parser, raw: bytes) -> Reply:
    return parser.read_reply(io.BytesIO(raw).readline)


def test_single_line_reply(parser):
    reply = read(parser, b"220 Service ready\r\n")
    assert reply.code == 220
    assert reply.message == "Service ready"
    assert reply.category is ReplyCategory.POSITIVE_COMPLETION


def test_multiline_reply_is_one_reply(parser):
    raw = b"150-Here comes the directory listing.\r\nfoo.txt\r\n150 Directory send OK.\r\n"
    reply = read(parser, raw)
    assert reply.code == 150
    assert reply.category is ReplyCategory.POSITIVE_PRELIMINARY
    assert "Here comes the directory listing." in reply.message
    assert "foo.txt" in reply.message
    assert len(reply.lines) == 3


def test_multiline_reply_ignores_other_codes_inside_body(parser):
    raw = b"211-Features:\r\n 211 not the end\r\n200 still body\r\n211 End\r\nleftover\r\n"
    stream = io.BytesIO(raw)
    reply = parser.read_reply(stream.readline)
    assert reply.code == 211
    assert reply.lines[-1] == "211 End"
    assert stream.readline() == b"leftover\r\n"


@pytest.mark.parametrize("code, category", [
    (110, ReplyCategory.POSITIVE_PRELIMINARY),
    (226, ReplyCategory.POSITIVE_COMPLETION),
    (331, ReplyCategory.POSITIVE_INTERMEDIATE),
    (425, ReplyCategory.TRANSIENT_NEGATIVE),
    (550, ReplyCategory.PERMANENT_NEGATIVE),
])
def test_category_comes_from_leading_digit(parser, code, category):
    reply = read(parser, f"{code} text\r\n".encode())
    assert reply.category is category
    assert reply.is_negative == (code >= 400)


@pytest.mark.parametrize("raw", [b"hello\r\n", b"22 short\r\n", b"2200 no separator\r\n", b"620 bad digit\r\n"])
def test_malformed_reply_raises_protocol_error(parser, raw):
    with pytest.raises(ProtocolError):
        read(parser, raw)


def test_eof_inside_multiline_reply_is_transport_error(parser):
    with pytest.raises(TransportError):
        read(parser, b"150-start\r\nmore\r\n")


def test_reply_is_immutable(parser):
    reply = read(parser, b"200 OK\r\n")
    with pytest.raises(AttributeError):
        reply.code = 500


def test_parse_data_handles_full_text(parser):
    reply = parser.parse_data("230-Welcome\r\n230 Logged in\r\n")
    assert reply.code == 230
    assert reply.message == "Welcome\nLogged in"


def test_pasv_port_computation(parser):
    ip, port = parser.parse_pasv_response("Entering Passive Mode (127,0,0,1,200,13)")
    assert ip == "127.0.0.1"
    assert port == 200 * 256 + 13 == 51213


@pytest.mark.parametrize("message", [
    "Entering Passive Mode",
    "Entering Passive Mode (127,0,0,1,200)",
    "Entering Passive Mode (127,0,0,1,300,13)",
    "Entering Passive Mode (a,b,c,d,e,f)",
])
def test_bad_pasv_reply(parser, message):
    with pytest.raises(ValueError):
        parser.parse_pasv_response(message)


def test_port_argument_encoding(parser):
    assert parser.format_port_argument("192.168.1.10", 51213) == "192,168,1,10,200,13"


def test_line_longer_than_limit(parser):
    with pytest.raises(ProtocolError):
        read(parser, b"220 " + b"x" * MAX_LINE_LENGTH + b"\r\n")


def test_line_at_limit_is_accepted(parser):
    line = b"220 " + b"x" * (MAX_LINE_LENGTH - 6) + b"\r\n"
    assert read(parser, line).code == 220
