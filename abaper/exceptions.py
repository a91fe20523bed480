"""abaper exception classes."""

from enum import Enum
from typing import List, Optional

import httpx


class AbaperError(Exception):
    """Base exception for all abaper errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        # Errors raised after this one (e.g. a failed unlock) that must not replace it.
        self.secondary_errors: List["AbaperError"] = []


class ConnectivityKind(str, Enum):
    """Underlying cause of a failed connection attempt."""
    REFUSED = "refused"
    TIMEOUT = "timeout"
    DNS = "dns"
    CLOSED = "closed"
    OTHER = "other"


class ConnectivityError(AbaperError):
    """Raised when the SAP system cannot be reached."""

    def __init__(self, message: str, kind: ConnectivityKind = ConnectivityKind.OTHER,
                 host: str = None, hint: str = None):
        super().__init__(message)
        self.kind = kind
        self.host = host
        self.hint = hint


class AuthenticationError(AbaperError):
    """Raised when the credentials are rejected."""
    pass


class NotAuthenticatedError(AuthenticationError):
    """Raised when an operation needs a session that has not been established."""
    pass


class AuthorizationError(AbaperError):
    """Raised when the user lacks the authorizations for an operation."""
    pass


class NotFoundError(AbaperError):
    """Raised when an object or ADT service does not exist."""
    pass


class ServiceUnavailableError(NotFoundError):
    """Raised when an optional, custom ADT service is not installed."""
    pass


class ConflictError(AbaperError):
    """Raised when an object already exists or is held by someone else."""
    pass


class ObjectLockedError(ConflictError):
    """Raised when another session holds the lock on an object."""
    pass


class ProtocolError(AbaperError):
    """Raised when a response does not have any recognised shape."""

    def __init__(self, message: str, payload: str = None, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, body=payload)
        self.payload = payload


class ServerError(AbaperError):
    """Raised when the SAP system answers with a 5xx status."""
    pass


class ValidationError(AbaperError):
    """Raised when input validation fails."""
    pass


def error_for_response(response: httpx.Response, context: str) -> AbaperError:
    """Build the typed error for an unsuccessful ADT response.

    Args:
        response: The HTTP response with a non-success status
        context: Short description of the failed operation

    Returns:
        The matching AbaperError subclass, carrying status and body
    """
    status = response.status_code
    body = response.text
    if status == 401:
        return AuthenticationError(
            f"{context}: authentication failed (401) - invalid username or password, or session expired",
            status_code=status, body=body)
    if status == 403:
        return AuthorizationError(
            f"{context}: access forbidden (403) - user lacks proper authorizations (S_DEVELOP)",
            status_code=status, body=body)
    if status == 404:
        return NotFoundError(f"{context}: not found (404)", status_code=status, body=body)
    if status == 409:
        return ConflictError(f"{context}: conflict (409) - {body}", status_code=status, body=body)
    if status >= 500:
        return ServerError(f"{context}: server error HTTP {status} - {body}", status_code=status, body=body)
    return ProtocolError(f"{context}: unexpected HTTP {status} - {body}", payload=body, status_code=status)


def _split_host(host: str):
    if ":" in host:
        name, _, port = host.rpartition(":")
        return name, port
    return host, "unknown"


def connectivity_error(exc: httpx.RequestError, host: str) -> ConnectivityError:
    """Classify an httpx transport failure into a ConnectivityError with a hint.

    Args:
        exc: The transport exception raised by httpx
        host: ``host[:port]`` that was being contacted

    Returns:
        ConnectivityError whose ``kind`` names the cause
    """
    name, port = _split_host(host)
    text = str(exc).lower()

    if isinstance(exc, httpx.TimeoutException) or "timed out" in text or "timeout" in text:
        return ConnectivityError(
            f"connection timeout to {host}. Possible issues: network connectivity problems, "
            f"SAP system overloaded or slow, firewall dropping packets, VPN connection issues. "
            f"Original error: {exc}",
            kind=ConnectivityKind.TIMEOUT, host=host,
            hint="check VPN and firewall, or raise SAP_CONNECT_TIMEOUT")

    if any(marker in text for marker in ("name or service not known", "nodename nor servname",
                                         "getaddrinfo failed", "no such host",
                                         "temporary failure in name resolution",
                                         "name resolution")):
        return ConnectivityError(
            f"hostname resolution failed for '{name}'. Possible issues: wrong hostname, "
            f"DNS resolution problems, VPN not connected. Original error: {exc}",
            kind=ConnectivityKind.DNS, host=host,
            hint=f"check the spelling of '{name}' and that the VPN is connected")

    if "refused" in text:
        return ConnectivityError(
            f"connection refused to {host}. Possible issues: SAP system not running, wrong "
            f"hostname or port number, firewall blocking the connection, SAP HTTP service "
            f"not active. Original error: {exc}",
            kind=ConnectivityKind.REFUSED, host=host,
            hint=f"try: ping {name} / telnet {name} 8000")

    if isinstance(exc, httpx.RemoteProtocolError) or "eof" in text or "disconnected" in text:
        return ConnectivityError(
            f"connection closed immediately to {host}. This usually indicates a wrong port "
            f"number (SAP HTTP is usually 8000, not {port}), ADT services not activated in "
            f"SICF, or the SAP system rejecting HTTP connections. Original error: {exc}",
            kind=ConnectivityKind.CLOSED, host=host,
            hint=f'try: export SAP_HOST="{name}:8000"')

    return ConnectivityError(f"connectivity failed to {host}: {exc}", kind=ConnectivityKind.OTHER, host=host)
