"""Extraction of the few fields abaper needs from ADT XML responses."""

import xml.etree.ElementTree as ET
from typing import Iterator, List, Optional

from .models import ActivationMessage, AdtObject


def local_name(tag: str) -> str:
    """Strip the ``{namespace}`` prefix ElementTree puts on tags and attributes."""
    return tag.rsplit("}", 1)[-1]


def attribute(element: ET.Element, name: str) -> Optional[str]:
    """Get an attribute by local name, whatever its namespace."""
    wanted = name.lower()
    for key, value in element.attrib.items():
        if local_name(key).lower() == wanted:
            return value
    return None


def iter_local(root: ET.Element, name: str) -> Iterator[ET.Element]:
    """Iterate over all descendants (and root) with the given local tag name."""
    for element in root.iter():
        if local_name(element.tag) == name:
            yield element


def child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def parse_object_references(payload: str) -> List[AdtObject]:
    """Parse an ``adtcore:objectReferences`` document (quick search result).

    Raises:
        xml.etree.ElementTree.ParseError: If the payload is not XML
    """
    root = ET.fromstring(payload)
    objects = []
    for ref in iter_local(root, "objectReference"):
        objects.append(AdtObject(
            name=attribute(ref, "name") or "",
            type=attribute(ref, "type") or "",
            description=attribute(ref, "description") or "",
            package=attribute(ref, "packageName") or "",
            uri=attribute(ref, "uri") or "",
        ))
    return objects


def parse_node_structure(payload: str) -> List[AdtObject]:
    """Parse a repository node structure (package contents) response."""
    root = ET.fromstring(payload)
    objects = []
    for node in iter_local(root, "SEU_ADT_REPOSITORY_OBJ_NODE"):
        name = child_text(node, "OBJECT_NAME")
        if not name:
            continue
        objects.append(AdtObject(
            name=name,
            type=child_text(node, "OBJECT_TYPE"),
            description=child_text(node, "DESCRIPTION"),
            uri=child_text(node, "OBJECT_URI"),
        ))
    return objects


def parse_activation_messages(payload: str) -> List[ActivationMessage]:
    """Parse the check messages of an activation response.

    An empty body means activation went through without messages.
    """
    if not payload.strip():
        return []
    root = ET.fromstring(payload)
    messages = []
    for msg in iter_local(root, "msg"):
        texts = [(t.text or "").strip() for t in iter_local(msg, "txt")]
        messages.append(ActivationMessage(
            severity=attribute(msg, "type") or "",
            text=" ".join(t for t in texts if t) or attribute(msg, "shortText") or "",
            uri=attribute(msg, "href") or "",
        ))
    return messages
