from __future__ import annotations

from dataclasses import dataclass
import math
import os
from pathlib import Path

DEFAULT_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_LINK_HOST = "localhost"
DEFAULT_LINK_PORT = 8443
DEFAULT_LINK_TIMEOUT_SECONDS = 300
LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True, slots=True)
class LinkServerConfig:
    """Where the local linking page listens and how long it waits."""

    host: str = DEFAULT_LINK_HOST
    port: int = DEFAULT_LINK_PORT
    timeout_seconds: int = DEFAULT_LINK_TIMEOUT_SECONDS
    ssl_cert_path: str | None = None
    ssl_key_path: str | None = None

    @property
    def use_tls(self) -> bool:
        return bool(self.ssl_cert_path and self.ssl_key_path)


@dataclass(frozen=True, slots=True)
class SubscopeConfig:
    """Settings loaded once at process startup."""

    retrieve_url: str
    exchange_url: str
    cache_dir: Path
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    link: LinkServerConfig = LinkServerConfig()
    log_level: str = "WARNING"


def _require_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _positive_number(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a finite number greater than zero")
    return value


def _port(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    if not raw.isdigit() or not 0 <= int(raw) <= 65535:
        raise ValueError(f"{name} must be a port number between 0 and 65535")
    return int(raw)


def load_config_from_env() -> SubscopeConfig:
    """Load settings from the environment, failing fast on bad values."""
    retrieve_url = _require_env("SUBSCOPE_RETRIEVE_URL")
    exchange_url = _require_env("SUBSCOPE_EXCHANGE_URL")

    cache_dir = Path(
        os.environ.get("SUBSCOPE_CACHE_DIR", "").strip() or "~/.cache/subscope"
    ).expanduser()

    ssl_cert = os.environ.get("SUBSCOPE_LINK_SSL_CERT", "").strip() or None
    ssl_key = os.environ.get("SUBSCOPE_LINK_SSL_KEY", "").strip() or None
    if bool(ssl_cert) != bool(ssl_key):
        raise ValueError(
            "SUBSCOPE_LINK_SSL_CERT and SUBSCOPE_LINK_SSL_KEY must be set together"
        )

    log_level = os.environ.get("SUBSCOPE_LOG_LEVEL", "WARNING").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            "SUBSCOPE_LOG_LEVEL must be one of: " + ", ".join(sorted(LOG_LEVELS))
        )

    link = LinkServerConfig(
        host=os.environ.get("SUBSCOPE_LINK_HOST", "").strip() or DEFAULT_LINK_HOST,
        port=_port("SUBSCOPE_LINK_PORT", DEFAULT_LINK_PORT),
        timeout_seconds=int(
            _positive_number(
                "SUBSCOPE_LINK_TIMEOUT_SECONDS", DEFAULT_LINK_TIMEOUT_SECONDS
            )
        ),
        ssl_cert_path=ssl_cert,
        ssl_key_path=ssl_key,
    )

    return SubscopeConfig(
        retrieve_url=retrieve_url,
        exchange_url=exchange_url,
        cache_dir=cache_dir,
        cache_ttl_seconds=_positive_number(
            "SUBSCOPE_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS
        ),
        request_timeout_seconds=_positive_number(
            "SUBSCOPE_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS
        ),
        link=link,
        log_level=log_level,
    )
