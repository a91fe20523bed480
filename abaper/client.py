"""abaper ADT client."""

import json
import logging
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional

import httpx

from .auth import Authenticator
from .exceptions import (
    AbaperError,
    ConflictError,
    NotAuthenticatedError,
    NotFoundError,
    ProtocolError,
    ServiceUnavailableError,
    ValidationError,
    connectivity_error,
    error_for_response,
)
from .locking import LockCoordinator
from .models import (
    ConnectionProfile,
    MutationResult,
    Package,
    SearchResult,
    SourceCode,
    TableColumn,
    TableData,
    TypeInfo,
)
from .object_types import OBJECT_KINDS, ObjectReference, get_kind
from .parsing import parse_node_structure, parse_object_references
from .session import ACCEPT_ANY, ACCEPT_JSON, ACCEPT_SOURCE, ACCEPT_XML, Session
from .transport import create_http_client, server_host
from .workflow import SourceMutationWorkflow

logger = logging.getLogger("abaper.client")

SEARCH_PATH = "/repository/informationsystem/search"
NODE_STRUCTURE_PATH = "/repository/nodestructure"
DOMAIN_PATH = "/ddic/domains/{name}/source/main"
DATA_ELEMENT_PATH = "/ddic/dataelements/{name}"
TABLE_CONTENT_PATH = "/z_mcp_abap_adt/z_tablecontent/{name}"
PING_PATH = "/discovery"
PING_TIMEOUT = 5.0
DEFAULT_MAX_RESULTS = 100
DEFAULT_PACKAGE = "$TMP"


class AdtClient:
    """SAP ADT client for one system and user."""

    def __init__(self, profile: ConnectionProfile, http_client: Optional[httpx.Client] = None,
                 session: Optional[Session] = None, transport: Optional[httpx.BaseTransport] = None):
        """Initialize the ADT client.

        Args:
            profile: Connection profile of the SAP system
            http_client: Pre-built HTTP client; created from the profile if omitted
            session: Already authenticated session, if any
            transport: httpx transport override used when creating the client
        """
        self.profile = profile
        self.http_client = http_client or create_http_client(profile, transport=transport)
        self.session = session

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.session.is_authenticated

    def _require_session(self) -> Session:
        if not self.is_authenticated:
            raise NotAuthenticatedError("client not authenticated - call authenticate() first")
        return self.session

    def _get(self, path: str, accept: str, params: Optional[dict] = None,
             timeout: Optional[float] = None) -> httpx.Response:
        session = self._require_session()
        kwargs = {"params": params, "headers": session.headers(accept)}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            return self.http_client.get(session.url(path), **kwargs)
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(session.base_url)) from e

    def authenticate(self) -> Session:
        """Log on and keep the resulting session.

        Any previous session is dropped first, so a failed logon leaves the
        client unauthenticated.
        """
        self.session = None
        self.session = Authenticator(self.profile, self.http_client).authenticate()
        return self.session

    def test_connection(self) -> None:
        """Check connectivity, then run a full authentication.

        Raises:
            ConnectivityError: If the system cannot be reached
            AuthenticationError: If the credentials are rejected
        """
        logger.info("Starting ADT connection test for %s", self.profile.host)
        self.session = None
        authenticator = Authenticator(self.profile, self.http_client)
        authenticator.probe(self.profile.base_url)
        self.session = authenticator.authenticate()
        logger.info("All ADT connection tests passed successfully")

    def ping(self) -> None:
        """Cheap liveness check of the current session.

        Raises:
            AbaperError: If the session no longer answers
        """
        response = self._get(PING_PATH, ACCEPT_ANY, timeout=PING_TIMEOUT)
        if response.status_code not in (200, 304):
            raise error_for_response(response, "ping")

    def get_object(self, object_type: str, name: str, *args: str):
        """Retrieve the source of an object.

        Args:
            object_type: Object type (program, class, function, ...) or ``package``
            name: Object name
            *args: Extra arguments; the function group for ``function``

        Returns:
            SourceCode, or Package for ``package``
        """
        if object_type.strip().lower() == "package":
            return self.get_package_contents(name)

        ref = ObjectReference.create(object_type, name, group=args[0] if args else None)
        logger.info("Retrieving %s %s", ref.kind.name, ref.name)

        response = self._get(ref.source_path, ACCEPT_SOURCE)
        if response.status_code == 404:
            raise NotFoundError(f"{ref.kind.name} {ref.name} not found (404)", status_code=404, body=response.text)
        if response.status_code != 200:
            raise error_for_response(response, f"failed to get {ref.kind.name} {ref.name}")

        result = SourceCode(
            object_name=ref.name,
            object_type=ref.kind.adt_type,
            source=response.text,
            etag=response.headers.get("etag"),
        )
        logger.info("%s %s retrieved successfully (source_length=%d)", ref.kind.name, ref.name, len(result.source))
        return result

    def search_objects(self, pattern: str, types: Optional[Iterable[str]] = None,
                       max_results: int = DEFAULT_MAX_RESULTS) -> SearchResult:
        """Search repository objects by name pattern.

        Args:
            pattern: Name pattern; ``*`` is appended if missing
            types: Optional object types to keep
            max_results: Upper bound passed to the server

        Returns:
            SearchResult with matching objects
        """
        pattern = pattern.strip().upper()
        if not pattern.endswith("*"):
            pattern += "*"
        logger.info("Searching objects (pattern=%s, types=%s)", pattern, types)

        response = self._get(SEARCH_PATH, ACCEPT_XML, params={
            "operation": "quickSearch",
            "query": pattern,
            "maxResults": str(max_results),
        })
        if response.status_code != 200:
            raise error_for_response(response, "search failed")

        objects = self._parse_references(response.text)
        if types:
            prefixes = {get_kind(t).adt_type.split("/")[0] for t in types}
            objects = [o for o in objects if o.type.split("/")[0] in prefixes]

        logger.info("Search completed (pattern=%s, found=%d)", pattern, len(objects))
        return SearchResult(objects=objects, total=len(objects))

    def list_packages(self, pattern: str = "*") -> List[Package]:
        """List development packages matching a pattern."""
        pattern = pattern.strip().upper() or "*"
        logger.info("Listing packages (pattern=%s)", pattern)

        response = self._get(SEARCH_PATH, ACCEPT_XML, params={
            "operation": "quickSearch",
            "query": pattern,
            "objectType": "DEVC/K",
            "maxResults": str(DEFAULT_MAX_RESULTS),
        })
        if response.status_code != 200:
            raise error_for_response(response, "package search failed")

        packages = [Package(name=o.name, description=o.description)
                    for o in self._parse_references(response.text)]
        logger.info("Package search completed (pattern=%s, packages_found=%d)", pattern, len(packages))
        return packages

    def get_package_contents(self, name: str) -> Package:
        """List the objects of a development package."""
        session = self._require_session()
        name = name.strip().upper()
        logger.info("Retrieving package contents of %s", name)

        try:
            response = self.http_client.post(
                session.url(NODE_STRUCTURE_PATH),
                headers=session.headers(ACCEPT_XML, write=True),
                data={"parent_type": "DEVC/K", "parent_name": name, "withShortDescriptions": "true"},
            )
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(session.base_url)) from e

        if response.status_code == 404:
            raise NotFoundError(f"package {name} not found (404)", status_code=404, body=response.text)
        if response.status_code != 200:
            raise error_for_response(response, f"failed to get package {name}")

        try:
            objects = parse_node_structure(response.text)
        except ET.ParseError as e:
            raise ProtocolError(f"unreadable package contents for {name}: {e}", payload=response.text) from e
        return Package(name=name, objects=objects)

    def get_type_info(self, name: str) -> TypeInfo:
        """Retrieve a DDIC type, trying domain first and data element second."""
        name = name.strip().upper()
        segment = name.lower()
        logger.info("Retrieving type info for %s", name)

        for kind, path, accept in (
            ("DOMAIN", DOMAIN_PATH, ACCEPT_SOURCE),
            ("DATA_ELEMENT", DATA_ELEMENT_PATH, ACCEPT_XML),
        ):
            response = self._get(path.format(name=segment), accept)
            if response.status_code == 200:
                return TypeInfo(type_name=name, type_kind=kind, source=response.text)
            if response.status_code != 404:
                raise error_for_response(response, f"failed to get type info for {name}")
            logger.debug("%s not found as %s", name, kind)

        raise NotFoundError(f"type {name} not found as domain or data element", status_code=404)

    def get_table_contents(self, name: str, max_rows: int = DEFAULT_MAX_RESULTS) -> TableData:
        """Preview table rows through the custom table content service.

        The service is not part of standard ADT; systems without it answer
        with 404, reported as ServiceUnavailableError.
        """
        name = name.strip().upper()
        if max_rows <= 0:
            max_rows = DEFAULT_MAX_RESULTS
        logger.info("Retrieving table contents of %s (max_rows=%d)", name, max_rows)

        response = self._get(TABLE_CONTENT_PATH.format(name=name), ACCEPT_JSON, params={"maxRows": str(max_rows)})
        if response.status_code == 404:
            raise ServiceUnavailableError(
                "table contents service not available - requires custom SAP service at "
                + TABLE_CONTENT_PATH.format(name="<table>"),
                status_code=404, body=response.text)
        if response.status_code != 200:
            raise error_for_response(response, f"failed to get table contents of {name}")

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ProtocolError(f"failed to parse table contents: {e}", payload=response.text) from e

        return TableData(
            table_name=data.get("table_name", name),
            row_count=data.get("row_count", len(data.get("rows", []))),
            columns=[
                TableColumn(
                    name=column.get("name", ""),
                    data_type=column.get("data_type", ""),
                    length=column.get("length", 0),
                    decimals=column.get("decimals", 0),
                )
                for column in data.get("columns", [])
            ],
            rows=data.get("rows", []),
        )

    def create_object(self, object_type: str, name: str, description: str, source: str = "",
                      package: str = DEFAULT_PACKAGE) -> Optional[MutationResult]:
        """Create an object and, if source is given, write and activate it.

        Args:
            object_type: program, class, interface or include
            name: Object name
            description: Short description
            source: Initial source; nothing is written if empty
            package: Development package

        Returns:
            MutationResult of the source update, or None without source
        """
        session = self._require_session()
        ref = self._mutable_reference(object_type, name)
        kind = ref.kind
        logger.info("Creating %s %s (description=%s)", kind.name, ref.name, description)

        try:
            response = self.http_client.post(
                session.url(kind.collection),
                headers=session.headers(kind.content_type, write=True, content_type=kind.content_type),
                content=self._creation_payload(ref, description, package).encode("utf-8"),
            )
        except httpx.RequestError as e:
            raise connectivity_error(e, server_host(session.base_url)) from e

        if response.status_code == 409:
            raise ConflictError(f"{kind.name} {ref.name} already exists (409)", status_code=409, body=response.text)
        if response.status_code == 404:
            raise NotFoundError(
                f"{kind.name} creation service not found (404) - may not be available on this SAP system",
                status_code=404, body=response.text)
        if response.status_code not in (200, 201):
            raise error_for_response(response, f"failed to create {kind.name} {ref.name}")
        logger.info("%s %s created", kind.name, ref.name)

        if not source:
            return None
        try:
            return self._workflow(session).set_source(ref, source, activate=True)
        except AbaperError as e:
            logger.warning("%s %s created but source update failed: %s", kind.name, ref.name, e)
            raise

    def update_object(self, object_type: str, name: str, source: str, activate: bool = True) -> MutationResult:
        """Replace the source of an existing object under lock."""
        session = self._require_session()
        ref = self._mutable_reference(object_type, name)
        return self._workflow(session).set_source(ref, source, activate=activate)

    def _workflow(self, session: Session) -> SourceMutationWorkflow:
        return SourceMutationWorkflow(self.http_client, session, LockCoordinator(self.http_client, session))

    @staticmethod
    def _mutable_reference(object_type: str, name: str) -> ObjectReference:
        ref = ObjectReference.create(object_type, name)
        if not ref.kind.mutable:
            mutable = ", ".join(k.name for k in OBJECT_KINDS.values() if k.mutable)
            raise ValidationError(f"{ref.kind.name} objects cannot be changed (supported: {mutable})")
        return ref

    def _creation_payload(self, ref: ObjectReference, description: str, package: str) -> str:
        kind = ref.kind
        prefix = kind.root_element.split(":")[0]
        root = ET.Element(kind.root_element, {
            f"xmlns:{prefix}": kind.namespace,
            "xmlns:adtcore": "http://www.sap.com/adt/core",
            "adtcore:type": kind.adt_type,
            "adtcore:name": ref.name,
            "adtcore:description": description,
            "adtcore:responsible": self.profile.username.upper(),
            "adtcore:masterLanguage": self.profile.language.upper(),
        })
        ET.SubElement(root, "adtcore:packageRef", {"adtcore:name": package.strip().upper()})
        return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")

    @staticmethod
    def _parse_references(payload: str):
        try:
            return parse_object_references(payload)
        except ET.ParseError as e:
            raise ProtocolError(f"unreadable search response: {e}", payload=payload) from e

    def close(self) -> None:
        """Close the HTTP client."""
        self.http_client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def connect(profile: ConnectionProfile, transport: Optional[httpx.BaseTransport] = None) -> AdtClient:
    """Create a client for the profile and authenticate it.

    The HTTP client is closed again if authentication fails.
    """
    client = AdtClient(profile, transport=transport)
    try:
        client.authenticate()
    except BaseException:
        client.close()
        raise
    return client
