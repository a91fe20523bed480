"""abaper data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

ADT_ROOT = "/sap/bc/adt"


class SessionType(str, Enum):
    """ADT session mode."""
    STATEFUL = "stateful"
    STATELESS = "stateless"


def normalize_base_url(host: str) -> str:
    """Turn ``host[:port]`` or a URL into the ADT base URL."""
    host = host.strip().rstrip("/")
    if not host.startswith(("http://", "https://")):
        host = "http://" + host
    if not host.endswith(ADT_ROOT):
        host = host + ADT_ROOT
    return host


@dataclass(frozen=True)
class ConnectionProfile:
    """Everything needed to reach and log on to one SAP system."""
    host: str
    username: str
    password: str = field(repr=False)
    client: str = "100"
    language: str = "EN"
    allow_self_signed: bool = False
    connect_timeout: float = 30.0
    request_timeout: float = 60.0

    @property
    def fingerprint(self) -> str:
        """Cache key for this profile. Not a digest; compare for equality only."""
        return "|".join((self.host, self.client, self.username, self.password))

    @property
    def base_url(self) -> str:
        return normalize_base_url(self.host)


@dataclass(frozen=True)
class LockHandle:
    """Proof of an exclusive lock on one object, valid for a single edit."""
    token: str
    transport_number: Optional[str] = None


@dataclass
class SourceCode:
    """Source of a repository object."""
    object_name: str
    object_type: str
    source: str
    etag: Optional[str] = None


@dataclass
class AdtObject:
    """A repository object as returned by search and package listings."""
    name: str
    type: str
    description: str = ""
    package: str = ""
    uri: str = ""


@dataclass
class SearchResult:
    """Result of a repository quick search."""
    objects: List[AdtObject] = field(default_factory=list)
    total: int = 0


@dataclass
class Package:
    """A development package and, when listed, its objects."""
    name: str
    description: str = ""
    objects: List[AdtObject] = field(default_factory=list)


@dataclass
class TypeInfo:
    """Definition of a DDIC domain or data element."""
    type_name: str
    type_kind: str
    source: str
    description: str = ""


@dataclass
class TableColumn:
    """Column metadata of a table preview."""
    name: str
    data_type: str = ""
    length: int = 0
    decimals: int = 0


@dataclass
class TableData:
    """Rows returned by the table content service."""
    table_name: str
    row_count: int = 0
    columns: List[TableColumn] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ActivationMessage:
    """A message from the activation log."""
    severity: str
    text: str
    uri: str = ""


@dataclass
class MutationResult:
    """Outcome of a source update."""
    object_name: str
    activated: bool = False
    messages: List[ActivationMessage] = field(default_factory=list)
    unlock_error: Optional[Exception] = None
