from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from xml.etree import ElementTree


@dataclass(frozen=True)
class AccessibilityNode:
    class_name: Optional[str]
    resource_id: Optional[str]
    text: Optional[str]
    content_desc: Optional[str]


def _node_from_attributes(tag: str, attrib: dict[str, str]) -> AccessibilityNode:
    # UIAutomator2 dumps use class/resource-id/text/content-desc;
    # XCUITest dumps use type/name/label/value.
    if "type" in attrib or tag.startswith("XCUIElementType"):
        return AccessibilityNode(
            class_name=attrib.get("type") or tag or None,
            resource_id=attrib.get("name") or None,
            text=attrib.get("value") or attrib.get("label") or None,
            content_desc=attrib.get("label") or None,
        )
    return AccessibilityNode(
        class_name=attrib.get("class") or None,
        resource_id=attrib.get("resource-id") or None,
        text=attrib.get("text") or None,
        content_desc=attrib.get("content-desc") or None,
    )


def extract_accessibility_nodes(page_source_xml: str, *, limit: int = 500) -> list[AccessibilityNode]:
    """
    Extract a lightweight accessibility view of the current screen from an
    Appium `/source` dump (Android UIAutomator or iOS XCUITest XML).
    """
    if not page_source_xml.strip():
        return []

    try:
        root = ElementTree.fromstring(page_source_xml)
    except ElementTree.ParseError as e:
        raise ValueError(f"Failed to parse page source XML: {e}") from e

    nodes: list[AccessibilityNode] = []
    for el in root.iter():
        if len(nodes) >= limit:
            break
        nodes.append(_node_from_attributes(el.tag, dict(el.attrib or {})))
    return nodes


def extract_accessible_strings(page_source_xml: str, *, limit: int = 500) -> list[str]:
    """
    Return a de-duplicated, ordered list of visible/accessible strings on
    the current screen.
    """
    seen: set[str] = set()
    out: list[str] = []
    for node in extract_accessibility_nodes(page_source_xml, limit=limit):
        for candidate in (node.text, node.content_desc):
            if not candidate:
                continue
            normalized = candidate.strip()
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            out.append(normalized)
    return out
