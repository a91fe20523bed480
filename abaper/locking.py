"""Acquiring and releasing exclusive ADT object locks."""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Callable, Mapping, Optional, Tuple

import httpx

from .exceptions import ObjectLockedError, ProtocolError, connectivity_error, error_for_response
from .models import LockHandle
from .object_types import ObjectReference
from .parsing import attribute, iter_local, local_name
from .session import ACCEPT_LOCK, Session
from .transport import server_host

logger = logging.getLogger("abaper.locking")

CONTENT_TYPE_MISSING = "content type missing"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
LOCK_HANDLE_HEADERS = ("sap-adt-lockhandle", "x-sap-adt-lockhandle")
LOCK_CONFLICT_STATUSES = (409, 423)
LOCK_CONFLICT_MARKERS = ("locked", "enqueue", "currently editing", "is being edited")

_MARKER_PATTERNS = (
    re.compile(r"<(?:\w+:)?LOCK_HANDLE>\s*([^<\s]+)\s*</", re.IGNORECASE),
    re.compile(r"lockHandle\s*=\s*\"([^\"]+)\"", re.IGNORECASE),
)
_TRANSPORT_PATTERN = re.compile(r"<(?:\w+:)?CORRNR>\s*([^<\s]+)\s*</", re.IGNORECASE)


def _xml_root(payload: str) -> Optional[ET.Element]:
    try:
        return ET.fromstring(payload)
    except ET.ParseError:
        return None


def parse_lock_envelope(payload: str) -> Optional[LockHandle]:
    """Read a lock result wrapped in an ``asx:abap`` values envelope."""
    root = _xml_root(payload)
    if root is None:
        return None
    for data in iter_local(root, "DATA"):
        fields = {local_name(child.tag).upper(): (child.text or "").strip() for child in data}
        token = fields.get("LOCK_HANDLE")
        if token:
            return LockHandle(token=token, transport_number=fields.get("CORRNR") or None)
    return None


def parse_lock_reference(payload: str) -> Optional[LockHandle]:
    """Read a lock result carried as attributes of an object reference element."""
    root = _xml_root(payload)
    if root is None:
        return None
    for ref in iter_local(root, "objectReference"):
        token = attribute(ref, "lockHandle") or attribute(ref, "LOCK_HANDLE")
        if token:
            transport = attribute(ref, "corrNr") or attribute(ref, "transportNumber")
            return LockHandle(token=token, transport_number=transport or None)
    return None


def parse_lock_marker(payload: str) -> Optional[LockHandle]:
    """Last resort: find a lock handle marker anywhere in the raw text."""
    for pattern in _MARKER_PATTERNS:
        match = pattern.search(payload)
        if match:
            transport = _TRANSPORT_PATTERN.search(payload)
            return LockHandle(token=match.group(1), transport_number=transport.group(1) if transport else None)
    return None


LOCK_RESPONSE_PARSERS: Tuple[Callable[[str], Optional[LockHandle]], ...] = (
    parse_lock_envelope,
    parse_lock_reference,
    parse_lock_marker,
)


def parse_lock_response(payload: str, headers: Optional[Mapping[str, str]] = None) -> LockHandle:
    """Extract the lock handle from a lock response.

    The parsers are tried in order and the first that finds a handle wins.
    A handle sent as a response header is accepted when the body has none.

    Args:
        payload: Response body
        headers: Response headers

    Returns:
        LockHandle from the response

    Raises:
        ProtocolError: If no known encoding yields a handle
    """
    for parser in LOCK_RESPONSE_PARSERS:
        handle = parser(payload)
        if handle is not None:
            logger.debug("Lock response parsed by %s", parser.__name__)
            return handle

    if headers is not None:
        for name in LOCK_HANDLE_HEADERS:
            token = headers.get(name)
            if token:
                return LockHandle(token=token)

    raise ProtocolError(f"no lock handle in lock response: {payload!r}", payload=payload)


def _is_content_type_missing(response: httpx.Response) -> bool:
    return response.status_code == 400 and CONTENT_TYPE_MISSING in response.text.lower()


def _is_lock_conflict(response: httpx.Response) -> bool:
    if response.status_code in LOCK_CONFLICT_STATUSES:
        return True
    if response.status_code == 403:
        body = response.text.lower()
        return any(marker in body for marker in LOCK_CONFLICT_MARKERS)
    return False


class LockCoordinator:
    """Takes and releases the server-side edit lock of repository objects."""

    def __init__(self, http_client: httpx.Client, session: Session):
        self.http_client = http_client
        self.session = session

    def _post(self, ref: ObjectReference, params: dict, content_type: Optional[str] = None) -> httpx.Response:
        headers = self.session.headers(ACCEPT_LOCK, write=True, content_type=content_type)
        headers["Content-Length"] = "0"
        try:
            return self.http_client.post(self.session.url(ref.path), params=params, headers=headers, content=b"")
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(self.session.base_url)) from e

    def lock(self, ref: ObjectReference) -> LockHandle:
        """Acquire the modification lock on an object.

        Args:
            ref: Object to lock

        Returns:
            LockHandle to present on the update and unlock calls

        Raises:
            ObjectLockedError: If another session holds the lock
            ProtocolError: If the response cannot be understood
        """
        params = {"_action": "LOCK", "accessMode": "MODIFY"}
        logger.debug("Locking %s %s", ref.kind.name, ref.name)

        response = self._post(ref, params)
        if _is_content_type_missing(response):
            # The only retry in abaper: some releases insist on a form content type.
            logger.debug("Retrying lock of %s with explicit Content-Type", ref.name)
            response = self._post(ref, params, content_type=FORM_CONTENT_TYPE)
            if _is_content_type_missing(response):
                raise ProtocolError(
                    f"failed to lock {ref.name}: server rejected both lock encodings: {response.text}",
                    payload=response.text, status_code=400)

        logger.debug("Lock response for %s: status=%d, body=%s", ref.name, response.status_code, response.text)

        if _is_lock_conflict(response):
            raise ObjectLockedError(
                f"{ref.kind.name} {ref.name} is locked by another session: {response.text}",
                status_code=response.status_code, body=response.text)
        if response.status_code != 200:
            raise error_for_response(response, f"failed to lock {ref.kind.name} {ref.name}")

        handle = parse_lock_response(response.text, response.headers)
        logger.debug("%s locked (transport=%s)", ref.name, handle.transport_number)
        return handle

    def unlock(self, ref: ObjectReference, handle: LockHandle) -> None:
        """Release a lock taken with :meth:`lock`.

        Args:
            ref: Locked object
            handle: Handle returned by the lock call
        """
        logger.debug("Unlocking %s %s", ref.kind.name, ref.name)
        response = self._post(ref, {"_action": "UNLOCK", "lockHandle": handle.token})
        if response.status_code not in (200, 204):
            raise error_for_response(response, f"failed to unlock {ref.kind.name} {ref.name}")
        logger.debug("%s unlocked", ref.name)
