"""Lock, write, unlock and activate a repository object's source."""

import logging
import xml.etree.ElementTree as ET
from typing import List, Optional

import httpx

from .exceptions import AbaperError, connectivity_error, error_for_response
from .locking import LockCoordinator
from .models import ActivationMessage, LockHandle, MutationResult
from .object_types import ADTCORE_NS, ObjectReference
from .parsing import parse_activation_messages
from .session import ACCEPT_SOURCE, ACCEPT_XML, Session
from .transport import server_host

logger = logging.getLogger("abaper.workflow")

ACTIVATION_PATH = "/activation"
SOURCE_CONTENT_TYPE = "text/plain; charset=utf-8"
XML_CONTENT_TYPE = "application/xml"


def source_content_type(source: str) -> str:
    """Content type for a source payload: XML documents are not plain text."""
    if source.lstrip().startswith("<?xml"):
        return XML_CONTENT_TYPE
    return SOURCE_CONTENT_TYPE


def activation_payload(ref: ObjectReference) -> str:
    root = ET.Element("adtcore:objectReferences", {"xmlns:adtcore": ADTCORE_NS})
    ET.SubElement(root, "adtcore:objectReference", {
        "adtcore:uri": ref.uri,
        "adtcore:name": ref.name,
    })
    return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")


class SourceMutationWorkflow:
    """Type-agnostic source update of one object under an exclusive lock."""

    def __init__(self, http_client: httpx.Client, session: Session,
                 locks: Optional[LockCoordinator] = None):
        self.http_client = http_client
        self.session = session
        self.locks = locks or LockCoordinator(http_client, session)

    def set_source(self, ref: ObjectReference, source: str, activate: bool = False) -> MutationResult:
        """Replace the source of an object.

        The lock is released exactly once before this returns, whatever
        happens while writing. If writing fails, that error is raised and a
        failed unlock is attached to it as a secondary error. A failed unlock
        never replaces the outcome of the write.

        Args:
            ref: Object to change
            source: New source text
            activate: Activate the object after unlocking

        Returns:
            MutationResult with activation messages and any unlock failure
        """
        logger.info("Updating source of %s %s (%d chars)", ref.kind.name, ref.name, len(source))
        handle = self.locks.lock(ref)

        failure: Optional[BaseException] = None
        unlock_error: Optional[AbaperError] = None
        try:
            self._put_source(ref, source, handle)
        except BaseException as e:
            failure = e
            raise
        finally:
            unlock_error = self._release(ref, handle)
            if unlock_error is not None and isinstance(failure, AbaperError):
                failure.secondary_errors.append(unlock_error)

        result = MutationResult(object_name=ref.name, unlock_error=unlock_error)
        if activate:
            result.messages = self.activate(ref)
            result.activated = True
        logger.info("Source of %s %s updated", ref.kind.name, ref.name)
        return result

    def _put_source(self, ref: ObjectReference, source: str, handle: LockHandle) -> None:
        params = {"lockHandle": handle.token}
        if handle.transport_number:
            params["corrNr"] = handle.transport_number
        headers = self.session.headers(ACCEPT_SOURCE, write=True, content_type=source_content_type(source))

        try:
            response = self.http_client.put(
                self.session.url(ref.source_path),
                params=params,
                headers=headers,
                content=source.encode("utf-8"),
            )
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(self.session.base_url)) from e

        if response.status_code not in (200, 204):
            logger.error("Source update of %s failed: status=%d, body=%s",
                         ref.name, response.status_code, response.text)
            raise error_for_response(response, f"failed to update {ref.kind.name} {ref.name} source")

    def _release(self, ref: ObjectReference, handle: LockHandle) -> Optional[AbaperError]:
        try:
            self.locks.unlock(ref, handle)
        except AbaperError as e:
            logger.warning("Failed to unlock %s %s: %s", ref.kind.name, ref.name, e)
            return e
        except Exception as e:
            logger.warning("Failed to unlock %s %s: %r", ref.kind.name, ref.name, e)
            error = AbaperError(f"failed to unlock {ref.kind.name} {ref.name}: {e}")
            error.__cause__ = e
            return error
        return None

    def activate(self, ref: ObjectReference) -> List[ActivationMessage]:
        """Activate an object so the saved source takes effect.

        Args:
            ref: Object to activate

        Returns:
            Messages from the activation log; empty if none or unreadable
        """
        logger.info("Activating %s %s", ref.kind.name, ref.name)
        headers = self.session.headers(ACCEPT_XML, write=True, content_type=XML_CONTENT_TYPE)
        try:
            response = self.http_client.post(
                self.session.url(ACTIVATION_PATH),
                params={"method": "activate", "preauditRequested": "true"},
                headers=headers,
                content=activation_payload(ref).encode("utf-8"),
            )
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(self.session.base_url)) from e

        if not 200 <= response.status_code < 300:
            raise error_for_response(response, f"failed to activate {ref.kind.name} {ref.name}")

        try:
            messages = parse_activation_messages(response.text)
        except ET.ParseError as e:
            logger.warning("Could not parse activation response for %s: %s", ref.name, e)
            return []
        for message in messages:
            logger.info("Activation message for %s [%s]: %s", ref.name, message.severity, message.text)
        return messages
