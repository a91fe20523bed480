"""Authenticated ADT session state and the headers every request carries."""

import base64
from dataclasses import dataclass, field
from typing import Dict, Optional

from . import __version__
from .exceptions import NotAuthenticatedError
from .models import ConnectionProfile, SessionType

ACCEPT_SOURCE = "text/plain"
ACCEPT_XML = "application/xml"
ACCEPT_JSON = "application/json"
ACCEPT_ANY = "application/xml,application/json,*/*"
ACCEPT_LOCK = (
    "application/vnd.sap.as+xml;charset=UTF-8;dataname=com.sap.adt.lock.result;q=0.8, "
    "application/vnd.sap.as+xml;charset=UTF-8;dataname=com.sap.adt.lock.result2;q=0.9"
)

CSRF_HEADER = "X-CSRF-Token"
CSRF_FETCH = "Fetch"
SESSION_TYPE_HEADER = "X-sap-adt-sessiontype"
USER_AGENT = f"abaper/{__version__}"


@dataclass
class Session:
    """State established by the authenticator.

    Only the authenticator mutates a session; everyone else reads it.
    """
    profile: ConnectionProfile = field(repr=False)
    base_url: str
    csrf_token: str = field(default="", repr=False)
    session_type: SessionType = SessionType.STATEFUL
    authenticated: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated and bool(self.csrf_token)

    def mark_authenticated(self) -> None:
        if not self.csrf_token:
            raise NotAuthenticatedError("cannot mark session authenticated without a CSRF token")
        self.authenticated = True

    def url(self, path: str) -> str:
        return self.base_url + path

    def _basic_auth(self) -> str:
        credentials = f"{self.profile.username}:{self.profile.password}".encode("utf-8")
        return "Basic " + base64.b64encode(credentials).decode("ascii")

    def headers(self, accept: str = ACCEPT_ANY, *, write: bool = False,
                fetch_token: bool = False, content_type: Optional[str] = None) -> Dict[str, str]:
        """Build the header set for one request.

        Args:
            accept: Accept header for the operation
            write: Request changes state; requires a CSRF token
            fetch_token: Ask the server for a fresh CSRF token
            content_type: Optional Content-Type of the request body

        Returns:
            Header dictionary ready to pass to httpx
        """
        if write and not self.csrf_token:
            raise NotAuthenticatedError("no CSRF token - call authenticate() before changing objects")

        headers = {
            "Authorization": self._basic_auth(),
            "Accept": accept,
            "User-Agent": USER_AGENT,
            "Cache-Control": "no-cache",
            # Locks live as long as the server-side session, so even reads declare it stateful.
            SESSION_TYPE_HEADER: SessionType.STATEFUL.value,
        }
        if self.profile.client:
            headers["sap-client"] = self.profile.client
        if self.profile.language:
            headers["Accept-Language"] = self.profile.language.lower()
        if fetch_token:
            headers[CSRF_HEADER] = CSRF_FETCH
        elif self.csrf_token:
            headers[CSRF_HEADER] = self.csrf_token
        if content_type:
            headers["Content-Type"] = content_type
        return headers
