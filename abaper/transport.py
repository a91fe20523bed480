"""HTTP transport configuration for ADT connections."""

import logging
from typing import Optional
from urllib.parse import urlsplit

import httpx

from .models import ConnectionProfile

logger = logging.getLogger("abaper.transport")

MAX_KEEPALIVE_CONNECTIONS = 10
KEEPALIVE_EXPIRY = 90.0


def create_http_client(profile: ConnectionProfile,
                       transport: Optional[httpx.BaseTransport] = None) -> httpx.Client:
    """Create the pooled HTTP client for a profile.

    The client keeps the cookies the SAP system assigns (``SAP_SESSIONID_*``,
    ``sap-contextid``), which is what ties later requests to the same
    server-side session.

    Args:
        profile: Connection profile
        transport: Optional transport override, mainly for tests

    Returns:
        Configured httpx.Client
    """
    client = httpx.Client(
        verify=not profile.allow_self_signed,
        timeout=httpx.Timeout(profile.request_timeout, connect=profile.connect_timeout),
        limits=httpx.Limits(
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
        transport=transport,
    )
    logger.debug("HTTP client created for %s (verify=%s, timeout=%ss)",
                 profile.base_url, not profile.allow_self_signed, profile.request_timeout)
    return client


def server_root(base_url: str) -> str:
    """Return ``scheme://host[:port]`` of a URL."""
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}"


def server_host(base_url: str) -> str:
    """Return ``host[:port]`` of a URL."""
    return urlsplit(base_url).netloc
