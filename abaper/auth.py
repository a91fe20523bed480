"""Four-step ADT logon: probe, login, CSRF token, validation."""

import logging
from typing import Optional

import httpx

from .exceptions import (
    AbaperError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ProtocolError,
    connectivity_error,
    error_for_response,
)
from .models import ConnectionProfile
from .session import ACCEPT_ANY, CSRF_FETCH, CSRF_HEADER, Session
from .transport import server_host, server_root

logger = logging.getLogger("abaper.auth")

DISCOVERY_PATHS = (
    "/core/info/system",
    "/discovery",
    "/compatibility/graph",
)
CSRF_PATH = "/discovery"
OK_STATUSES = (200, 304)


def _token_preview(token: str) -> str:
    return token[:min(10, len(token))] + "..."


class Authenticator:
    """Establishes an authenticated, stateful ADT session."""

    def __init__(self, profile: ConnectionProfile, http_client: httpx.Client):
        """Initialize the authenticator.

        Args:
            profile: Connection profile to log on with
            http_client: Client whose cookie jar will carry the session
        """
        self.profile = profile
        self.http_client = http_client

    def authenticate(self) -> Session:
        """Run the full handshake.

        Each step must succeed before the next one runs. Nothing is retried
        here; callers decide whether to try again.

        Returns:
            An authenticated Session
        """
        session = Session(profile=self.profile, base_url=self.profile.base_url)
        logger.info("Starting SAP ADT authentication (host=%s, user=%s, client=%s, language=%s)",
                    self.profile.host, self.profile.username, self.profile.client, self.profile.language)

        self.probe(session.base_url)
        self._login(session)
        self._fetch_csrf_token(session)
        self._validate(session)

        session.mark_authenticated()
        logger.info("SAP ADT authentication successful (csrf_token_length=%d, session_type=%s)",
                    len(session.csrf_token), session.session_type.value)
        return session

    def probe(self, base_url: str) -> None:
        """Check that the server answers at all, using the short connect timeout."""
        root = server_root(base_url)
        logger.debug("Testing basic connectivity to %s", root)
        try:
            response = self.http_client.head(root, timeout=self.profile.connect_timeout)
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(base_url)) from e
        logger.debug("Basic connectivity successful (status=%d, server=%s)",
                     response.status_code, response.headers.get("server", ""))

    def _login(self, session: Session) -> None:
        # Last failure other than a missing service.
        last_error: Optional[AbaperError] = None

        for path in DISCOVERY_PATHS:
            logger.debug("Trying login endpoint %s", path)
            try:
                response = self.http_client.get(session.url(path), headers=session.headers(ACCEPT_ANY))
            except httpx.RequestError as e:
                logger.debug("Login endpoint %s failed: %s", path, e)
                last_error = connectivity_error(e, server_host(session.base_url))
                continue

            logger.debug("Login response from %s: status=%d, content_length=%d",
                         path, response.status_code, len(response.content))

            if response.status_code in OK_STATUSES:
                logger.info("Initial session established via %s", path)
                return
            if response.status_code == 401:
                raise AuthenticationError(
                    f"authentication failed (401): invalid username or password for user "
                    f"'{self.profile.username}' on client {self.profile.client}",
                    status_code=401)
            if response.status_code == 403:
                raise AuthorizationError(
                    f"access forbidden (403): user '{self.profile.username}' lacks proper "
                    f"authorizations (S_DEVELOP)",
                    status_code=403)
            if response.status_code == 404:
                logger.debug("ADT service not found: %s", path)
                continue

            last_error = error_for_response(response, f"login via {path}")

        if last_error is None:
            raise NotFoundError(
                "failed to establish session: no ADT service answered. Activate /sap/bc/adt "
                "in transaction SICF",
                status_code=404)
        raise last_error

    def _fetch_csrf_token(self, session: Session) -> None:
        logger.debug("Retrieving CSRF token")
        try:
            response = self.http_client.get(
                session.url(CSRF_PATH),
                headers=session.headers(ACCEPT_ANY, fetch_token=True),
            )
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(session.base_url)) from e

        if response.status_code not in OK_STATUSES:
            raise error_for_response(response, "CSRF token request")

        token = response.headers.get(CSRF_HEADER, "")
        if not token or token.lower() == CSRF_FETCH.lower():
            raise ProtocolError("no valid CSRF token received from server",
                                payload=response.text, status_code=response.status_code)

        session.csrf_token = token
        logger.info("CSRF token retrieved successfully (token_preview=%s)", _token_preview(token))

    def _validate(self, session: Session) -> None:
        logger.debug("Validating session")
        last_error: Optional[str] = None

        for path in DISCOVERY_PATHS:
            try:
                response = self.http_client.get(session.url(path), headers=session.headers(ACCEPT_ANY))
            except httpx.RequestError as e:
                logger.debug("Validation endpoint %s failed: %s", path, e)
                last_error = str(e)
                continue

            if response.status_code in OK_STATUSES:
                logger.info("Session validation successful via %s", path)
                return
            logger.debug("Validation endpoint %s returned HTTP %d", path, response.status_code)
            last_error = f"validation failed at {path}: HTTP {response.status_code}"

        # Holding a token is accepted as proof of a live session.
        if session.csrf_token:
            logger.info("Session validation completed - CSRF token available, assuming session is valid "
                        "(last error: %s)", last_error)
            return

        raise AuthenticationError(f"all validation endpoints failed: {last_error}")
