"""abaper configuration -- explicit arguments > environment variables > defaults."""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .models import ConnectionProfile

logger = logging.getLogger("abaper.config")

_TRUE = ("true", "1", "yes")


def _env(key: str, *fallback_keys: str, default: str = "") -> str:
    """Look up a config value: first non-empty of ``key`` and ``fallback_keys``, else default."""
    for name in (key, *fallback_keys):
        val = os.environ.get(name)
        if val:
            return val
    return default


def _default_host() -> str:
    host = _env("SAP_HOST")
    port = _env("SAP_PORT")
    if host and port:
        return f"{host}:{port}"
    return host


@dataclass
class AbaperSettings:
    """Settings for connecting to one SAP system."""

    # Connection
    host: str = field(default_factory=_default_host)
    client: str = field(default_factory=lambda: _env("SAP_CLIENT", default="100"))
    username: str = field(default_factory=lambda: _env("SAP_USERNAME", "SAP_USER"))
    password: str = field(default_factory=lambda: _env("SAP_PASSWORD"), repr=False)
    language: str = field(default_factory=lambda: _env("SAP_LANGUAGE", default="EN"))
    allow_self_signed: bool = field(
        default_factory=lambda: _env("SAP_ALLOW_SELF_SIGNED").lower() in _TRUE
    )

    # Timing
    connect_timeout: float = field(
        default_factory=lambda: float(_env("SAP_CONNECT_TIMEOUT", default="30"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(_env("SAP_REQUEST_TIMEOUT", default="60"))
    )
    cache_ttl: float = field(
        default_factory=lambda: float(_env("ABAPER_CACHE_TTL", default="1800"))
    )

    # Logging
    log_level: str = field(default_factory=lambda: _env("ABAPER_LOG_LEVEL", default="WARNING"))
    log_file: Optional[str] = field(default_factory=lambda: os.environ.get("ABAPER_LOG_FILE"))

    def profile(self) -> ConnectionProfile:
        """Build the connection profile.

        Raises:
            ValueError: If host or username are missing
        """
        missing = [name for name, value in (("SAP_HOST", self.host), ("SAP_USERNAME", self.username)) if not value]
        if missing:
            raise ValueError(f"missing connection settings: {', '.join(missing)}")
        if self.connect_timeout > self.request_timeout:
            logger.warning("connect timeout (%ss) exceeds request timeout (%ss)",
                           self.connect_timeout, self.request_timeout)
        return ConnectionProfile(
            host=self.host,
            username=self.username,
            password=self.password,
            client=self.client,
            language=self.language,
            allow_self_signed=self.allow_self_signed,
            connect_timeout=self.connect_timeout,
            request_timeout=self.request_timeout,
        )
