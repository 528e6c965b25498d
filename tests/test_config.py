import pytest

from ftpcore.config import ClientConfig


def test_defaults():
    config = ClientConfig.from_env({})
    assert config.host == "localhost"
    assert config.port == 21
    assert config.username == "anonymous"
    assert config.passive is False


def test_from_env():
    config = ClientConfig.from_env({
        "FTP_HOST": "ftp.example.com",
        "FTP_PORT": "2121",
        "FTP_USER": "bob",
        "FTP_PASSWORD": "s3cret",
        "FTP_PASSIVE": "yes",
        "FTP_TIMEOUT": "2.5",
    })
    assert config.host == "ftp.example.com"
    assert config.port == 2121
    assert config.username == "bob"
    assert config.password == "s3cret"
    assert config.passive is True
    assert config.timeout == 2.5
    assert "s3cret" not in repr(config)
    assert "s3cret" not in str(config)


@pytest.mark.parametrize("name, value", [("FTP_PORT", "ftp"), ("FTP_TIMEOUT", "-1")])
def test_invalid_numbers(name, value):
    with pytest.raises(ValueError, match=name):
        ClientConfig.from_env({name: value})


def test_override_ignores_unset_values():
    config = ClientConfig(host="a").override(host=None, port=990, passive=True)
    assert config.host == "a"
    assert config.port == 990
    assert config.passive is True
