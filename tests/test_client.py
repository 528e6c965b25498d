import os
import threading

from ftpcore.client import AUTH_FAILED, CONNECT_FAILED, FTPClient
from ftpcore.config import ClientConfig

from conftest import PASSWORD, USERNAME


def test_each_call_uses_its_own_connection(client, ftp_server):
    assert client.make_directory("one").success
    assert client.directory_exists("one").payload is True
    assert ftp_server.connections == 2
    assert ftp_server.verbs().count("QUIT") == 2
    assert client.session is None


def test_batched_calls_share_one_session(client, ftp_server, tmp_path):
    local = tmp_path / "report.csv"
    local.write_bytes(b"id,value\n1,2\n")
    with client:
        assert client.upload(str(local), "report.csv").success
        assert client.file_size("report.csv").payload == local.stat().st_size
        assert client.list_directory().payload == ["report.csv"]
    assert ftp_server.connections == 1
    assert ftp_server.verbs().count("USER") == 1
    assert ftp_server.verbs()[-1] == "QUIT"


def test_unreachable_server():
    client = FTPClient("127.0.0.1", port=1, timeout=1)
    outcome = client.delete("anything")
    assert not outcome.success
    assert outcome.description == CONNECT_FAILED
    assert outcome.failed_step == "CONNECT"


def test_bad_credentials(ftp_server):
    client = FTPClient("127.0.0.1", username=USERNAME, password="nope", port=ftp_server.port, timeout=5)
    outcome = client.file_size("x")
    assert not outcome.success
    assert outcome.description == AUTH_FAILED
    assert "SIZE" not in ftp_server.verbs()
    assert ftp_server.verbs()[-1] == "QUIT"


def test_missing_local_file_does_not_connect(client, ftp_server, tmp_path):
    outcome = client.upload(str(tmp_path / "missing.txt"), "missing.txt")
    assert not outcome.success
    assert outcome.description == "Unable to find local file to send"
    assert ftp_server.connections == 0


def test_download_round_trip_in_active_mode(ftp_server, tmp_path):
    client = FTPClient("127.0.0.1", username=USERNAME, password=PASSWORD, port=ftp_server.port,
                       passive=False, timeout=5)
    with open(ftp_server.path("/remote.dat"), "wb") as f:
        f.write(b"\x00\x01payload\r\n")
    target = tmp_path / "remote.dat"
    outcome = client.download("remote.dat", str(target))
    assert outcome.success
    assert outcome.payload == 11
    assert target.read_bytes() == b"\x00\x01payload\r\n"
    assert "PORT" in ftp_server.verbs()


def test_chmod_capability_survives_between_calls(client, ftp_server):
    open(ftp_server.path("/run.sh"), "wb").close()
    assert client.set_permissions("run.sh", 0o700).success
    assert client.set_permissions("run.sh", 0o750).success
    assert ftp_server.verbs().count("CHMOD") == 1


def test_rename_and_remove(client, ftp_server):
    os.makedirs(ftp_server.path("/tmpdir"))
    assert client.rename("tmpdir", "archive").success
    assert client.remove_directory("archive").success
    assert not os.path.exists(ftp_server.path("/archive"))


def test_outcome_to_dict_does_not_leak_between_calls(client):
    failed = client.delete("ghost")
    ok = client.make_directory("real")
    assert failed.to_dict()["success"] is False
    assert ok.to_dict()["error"] is None
    assert ok.description == ""


def test_concurrent_callers_on_one_session(client, ftp_server):
    for i in range(5):
        os.makedirs(ftp_server.path(f"/d{i}"))
    results = []
    with client:
        threads = [threading.Thread(target=lambda i=i: results.append(client.directory_exists(f"d{i}")))
                   for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
    assert len(results) == 5
    assert all(r.success and r.payload for r in results)


def test_from_config(ftp_server):
    config = ClientConfig(host="127.0.0.1", port=ftp_server.port, username=USERNAME, password=PASSWORD,
                          passive=True, timeout=5)
    client = FTPClient.from_config(config)
    assert client.list_directory().success


def test_remove_directory_needs_a_path(client, ftp_server):
    outcome = client.remove_directory("")
    assert not outcome.success
    assert outcome.description == "Unable to delete remote directory"
    assert outcome.failed_step == "RMD"
    assert ftp_server.connections == 0


def test_shared_session_reconnects_after_loss(client, ftp_server):
    with client:
        ftp_server.script["DELE"] = "garbage"
        lost = client.delete("x")
        assert not lost.success
        assert not client.session.is_open

        del ftp_server.script["DELE"]
        assert client.make_directory("again").success
        assert client.session.is_open
    assert ftp_server.connections == 2
