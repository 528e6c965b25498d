import logging
import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .session import DEFAULT_PORT, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

TRUTHY = ('1', 'true', 'yes', 'on')
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass(frozen=True)
class ClientConfig:
    host: str = "localhost"
    port: int = DEFAULT_PORT
    username: str = "anonymous"
    password: str = field(default="", repr=False)
    passive: bool = False
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Builds the configuration from FTP_HOST, FTP_PORT, FTP_USER,
        FTP_PASSWORD, FTP_PASSIVE and FTP_TIMEOUT. Missing variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        return cls(
            host=env.get('FTP_HOST', cls.host),
            port=_number(env, 'FTP_PORT', int, cls.port),
            username=env.get('FTP_USER', cls.username),
            password=env.get('FTP_PASSWORD', cls.password),
            passive=env.get('FTP_PASSIVE', '0').strip().lower() in TRUTHY,
            timeout=_number(env, 'FTP_TIMEOUT', float, cls.timeout),
        )

    def override(self, **values) -> "ClientConfig":
        """Copy with every non-None value in `values` applied (CLI flags win over env)."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})

    def __str__(self):
        # never print the password
        return (f"ClientConfig(host={self.host}, port={self.port}, user={self.username}, "
                f"passive={self.passive}, timeout={self.timeout})")


def _number(env: Mapping[str, str], name: str, kind, default):
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def configure_logging(level: Optional[str] = None):
    """Logging setup shared by the command line and the Streamlit app."""
    level = (level or os.getenv('FTPCORE_LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
    logger.debug(f"Logging configured at {level}")
