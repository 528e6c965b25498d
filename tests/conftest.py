import pytest

from ftpcore.client import FTPClient
from ftpcore.commands import CommandExecutor
from ftpcore.connection import authenticate, close, connect

from fake_server import FakeFTPServer

USERNAME = "test"
PASSWORD = "password123"


@pytest.fixture
def ftp_server(tmp_path):
    server = FakeFTPServer(tmp_path / "ftp_root", users={USERNAME: PASSWORD, "admin": "admin123"})
    server.start()
    yield server
    server.stop()


@pytest.fixture(params=[True, False], ids=["passive", "active"])
def passive(request):
    return request.param


@pytest.fixture
def session(ftp_server, passive):
    s = connect("127.0.0.1", ftp_server.port, timeout=5, passive=passive)
    authenticate(s, USERNAME, PASSWORD)
    yield s
    close(s)


@pytest.fixture
def executor():
    return CommandExecutor()


@pytest.fixture
def client(ftp_server):
    c = FTPClient("127.0.0.1", username=USERNAME, password=PASSWORD, port=ftp_server.port,
                  passive=True, timeout=5)
    yield c
    c.close()
