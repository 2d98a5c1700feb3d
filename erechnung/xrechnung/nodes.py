"""Kleiner Baum-Builder für optionale XML-Knoten.

``leaf`` und ``group`` liefern ``None``, wenn kein Wert bzw. kein Kind
vorhanden ist. ``None``-Kinder werden beim Aufbau verworfen, sodass fehlende
optionale Felder nie als leere Elemente im Dokument landen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple, Union

from lxml import etree

NSMAP: Dict[str, str] = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
}


@dataclass(frozen=True)
class Node:
    tag: str
    text: Optional[str] = None
    attrib: Tuple[Tuple[str, str], ...] = ()
    children: Tuple["Node", ...] = ()


MaybeNode = Optional[Node]
Child = Union[MaybeNode, Iterable[MaybeNode]]


def _flatten(children: Iterable[Child]) -> Tuple[Node, ...]:
    flat = []
    for child in children:
        if child is None:
            continue
        if isinstance(child, Node):
            flat.append(child)
        else:
            flat.extend(node for node in child if node is not None)
    return tuple(flat)


def _attrib(attrs: Dict[str, Optional[str]]) -> Tuple[Tuple[str, str], ...]:
    return tuple((key, value) for key, value in attrs.items() if value is not None)


def leaf(tag: str, value: Optional[object], **attrs: Optional[str]) -> MaybeNode:
    if value is None:
        return None
    return Node(tag=tag, text=str(value), attrib=_attrib(attrs))


def group(tag: str, *children: Child, **attrs: Optional[str]) -> MaybeNode:
    flat = _flatten(children)
    if not flat:
        return None
    return Node(tag=tag, attrib=_attrib(attrs), children=flat)


def required(tag: str, *children: Child, text: Optional[str] = None, **attrs: Optional[str]) -> Node:
    return Node(tag=tag, text=text, attrib=_attrib(attrs), children=_flatten(children))


def qualify(name: str) -> str:
    """``ram:ID`` -> ``{urn:...}ID``; Namen ohne Präfix bleiben unverändert."""

    if ":" not in name:
        return name
    prefix, local = name.split(":", 1)
    return f"{{{NSMAP[prefix]}}}{local}"


def render(node: Node, parent: Optional[etree._Element] = None) -> etree._Element:
    if parent is None:
        element = etree.Element(qualify(node.tag), nsmap=NSMAP)
    else:
        element = etree.SubElement(parent, qualify(node.tag))
    for key, value in node.attrib:
        element.set(qualify(key), value)
    if node.text is not None:
        element.text = node.text
    for child in node.children:
        render(child, element)
    return element


def serialize(node: Node) -> str:
    element = render(node)
    return etree.tostring(
        element, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")
