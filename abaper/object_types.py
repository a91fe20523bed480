"""Declarative table of the ADT object types abaper knows how to address."""

from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote

from .exceptions import ValidationError
from .models import ADT_ROOT

ADTCORE_NS = "http://www.sap.com/adt/core"


@dataclass(frozen=True)
class ObjectKind:
    """How one object type is addressed, created and edited."""
    name: str
    adt_type: str
    path_template: str
    source_suffix: str = "/source/main"
    mutable: bool = False
    collection: Optional[str] = None
    content_type: Optional[str] = None
    root_element: Optional[str] = None
    namespace: Optional[str] = None
    needs_group: bool = False


OBJECT_KINDS: Dict[str, ObjectKind] = {
    kind.name: kind
    for kind in (
        ObjectKind(
            name="program",
            adt_type="PROG/P",
            path_template="/programs/programs/{name}",
            mutable=True,
            collection="/programs/programs",
            content_type="application/vnd.sap.adt.programs.programs.v2+xml",
            root_element="program:abapProgram",
            namespace="http://www.sap.com/adt/programs/programs",
        ),
        ObjectKind(
            name="class",
            adt_type="CLAS/OC",
            path_template="/oo/classes/{name}",
            mutable=True,
            collection="/oo/classes",
            content_type="application/vnd.sap.adt.oo.classes.v4+xml",
            root_element="class:abapClass",
            namespace="http://www.sap.com/adt/oo/classes",
        ),
        ObjectKind(
            name="interface",
            adt_type="INTF/OI",
            path_template="/oo/interfaces/{name}",
            mutable=True,
            collection="/oo/interfaces",
            content_type="application/vnd.sap.adt.oo.interfaces.v5+xml",
            root_element="intf:abapInterface",
            namespace="http://www.sap.com/adt/oo/interfaces",
        ),
        ObjectKind(
            name="include",
            adt_type="PROG/I",
            path_template="/programs/includes/{name}",
            mutable=True,
            collection="/programs/includes",
            content_type="application/vnd.sap.adt.programs.includes.v2+xml",
            root_element="include:abapInclude",
            namespace="http://www.sap.com/adt/programs/includes",
        ),
        ObjectKind(
            name="function",
            adt_type="FUGR/FF",
            path_template="/functions/groups/{group}/fmodules/{name}",
            needs_group=True,
        ),
        ObjectKind(
            name="function_group",
            adt_type="FUGR/F",
            path_template="/functions/groups/{name}",
        ),
        ObjectKind(
            name="structure",
            adt_type="TABL/DS",
            path_template="/ddic/structures/{name}",
        ),
        ObjectKind(
            name="table",
            adt_type="TABL/DT",
            path_template="/ddic/tables/{name}",
        ),
    )
}

_ALIASES = {
    "prog": "program",
    "report": "program",
    "clas": "class",
    "intf": "interface",
    "incl": "include",
    "func": "function",
    "fm": "function",
    "fugr": "function_group",
    "functiongroup": "function_group",
    "function-group": "function_group",
    "stru": "structure",
    "tabl": "table",
}


def get_kind(object_type: str) -> ObjectKind:
    """Look up an object kind by name or common alias."""
    key = object_type.strip().lower()
    key = _ALIASES.get(key, key)
    try:
        return OBJECT_KINDS[key]
    except KeyError:
        raise ValidationError(
            f"unsupported object type '{object_type}' (supported: {', '.join(sorted(OBJECT_KINDS))})"
        ) from None


def _path_segment(name: str) -> str:
    return quote(name.lower(), safe="")


@dataclass(frozen=True)
class ObjectReference:
    """Address of one repository object."""
    kind: ObjectKind
    name: str
    path: str
    group: Optional[str] = None

    @classmethod
    def create(cls, object_type: str, name: str, group: Optional[str] = None) -> "ObjectReference":
        """Derive the reference for ``name`` of the given type.

        Names are upper-cased for display and lower-cased in the URL, which
        is how ADT itself builds object URIs.
        """
        kind = get_kind(object_type)
        name = name.strip().upper()
        if not name:
            raise ValidationError("object name must not be empty")
        if kind.needs_group:
            if not group or not group.strip():
                raise ValidationError(f"{kind.name} {name} requires a function group")
            group = group.strip().upper()
        path = kind.path_template.format(
            name=_path_segment(name),
            group=_path_segment(group) if group else "",
        )
        return cls(kind=kind, name=name, path=path, group=group)

    @property
    def source_path(self) -> str:
        return self.path + self.kind.source_suffix

    @property
    def uri(self) -> str:
        return ADT_ROOT + self.path
