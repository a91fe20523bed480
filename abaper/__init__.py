"""abaper - SAP ADT session, locking and source update client."""

__version__ = "1.0.0"

from .auth import Authenticator
from .cache import CachedConnection, ConnectionCache
from .client import AdtClient, connect
from .config import AbaperSettings
from .exceptions import (
    AbaperError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ConnectivityError,
    ConnectivityKind,
    NotAuthenticatedError,
    NotFoundError,
    ObjectLockedError,
    ProtocolError,
    ServerError,
    ServiceUnavailableError,
    ValidationError,
)
from .locking import LockCoordinator
from .logs import setup_logging
from .models import (
    ActivationMessage,
    AdtObject,
    ConnectionProfile,
    LockHandle,
    MutationResult,
    Package,
    SearchResult,
    SessionType,
    SourceCode,
    TableColumn,
    TableData,
    TypeInfo,
)
from .object_types import OBJECT_KINDS, ObjectKind, ObjectReference
from .session import Session
from .workflow import SourceMutationWorkflow

__all__ = [
    "AdtClient",
    "connect",
    "ConnectionCache",
    "CachedConnection",
    "Authenticator",
    "Session",
    "LockCoordinator",
    "SourceMutationWorkflow",
    "AbaperSettings",
    "setup_logging",
    "AbaperError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "ConnectivityError",
    "ConnectivityKind",
    "NotAuthenticatedError",
    "NotFoundError",
    "ObjectLockedError",
    "ProtocolError",
    "ServerError",
    "ServiceUnavailableError",
    "ValidationError",
    "ActivationMessage",
    "AdtObject",
    "ConnectionProfile",
    "LockHandle",
    "MutationResult",
    "Package",
    "SearchResult",
    "SessionType",
    "SourceCode",
    "TableColumn",
    "TableData",
    "TypeInfo",
    "OBJECT_KINDS",
    "ObjectKind",
    "ObjectReference",
]
