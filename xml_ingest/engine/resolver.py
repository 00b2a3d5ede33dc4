"""XML parsing and root-level document type dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import IO, Any, Mapping, Sequence, Type

from lxml import etree
from pydantic import ValidationError

from ..errors import DocumentValidationError, MalformedXml, UnresolvedXmlType
from ..models import Invoices, Transactions, XmlDocument
from ..models.documents import TEXT_KEY

XmlTree = dict[str, Any]


@dataclass(frozen=True, slots=True)
class DispatchRule:
    """Select ``model`` when ``marker`` (and ``namespace``, if set) is a root child."""

    marker: str
    namespace: str | None
    model: Type[XmlDocument]

    def matches(self, tree: Mapping[str, Any]) -> bool:
        if self.marker not in tree:
            return False
        return self.namespace is None or self.namespace in tree


DEFAULT_RULES: tuple[DispatchRule, ...] = (
    DispatchRule("invoice", None, Invoices),
    DispatchRule("transaction", None, Transactions),
)


def _local_name(tag: Any) -> str | None:
    if not isinstance(tag, str):
        # comments and processing instructions
        return None
    return etree.QName(tag).localname


def element_to_tree(element: etree._Element) -> Any:
    """Convert an element into plain Python values.

    A leaf without attributes becomes its text; anything else becomes a mapping
    of local names to values, with repeated siblings collected into lists and
    attribute values stored under their local names. Text of an element with
    attributes or children is kept under ``#text``.
    """

    children: XmlTree = {}
    for name, value in element.attrib.items():
        children[etree.QName(name).localname] = value
    attributes = set(children)
    has_child_elements = False
    for child in element:
        name = _local_name(child.tag)
        if name is None:
            continue
        has_child_elements = True
        value = element_to_tree(child)
        if name in children and name not in attributes:
            existing = children[name]
            if isinstance(existing, list):
                existing.append(value)
            else:
                children[name] = [existing, value]
        else:
            children[name] = value
    text = element.text or ""
    if not children:
        return text
    if not has_child_elements or text.strip():
        children.setdefault(TEXT_KEY, text)
    return children


def _secure_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        remove_comments=True,
        remove_pis=True,
    )


def parse_xml(source: IO[bytes] | bytes) -> XmlTree:
    """Parse a byte stream (or bytes) into a tree rooted at the document element."""

    try:
        if isinstance(source, (bytes, bytearray)):
            root = etree.fromstring(bytes(source), parser=_secure_parser())
        else:
            root = etree.parse(source, parser=_secure_parser()).getroot()
    except etree.XMLSyntaxError as exc:
        raise MalformedXml(f"Malformed XML: {exc}") from exc
    if root is None:
        raise MalformedXml("Malformed XML: document has no root element")
    tree = element_to_tree(root)
    if isinstance(tree, str):
        # bare root such as <orders>text</orders>: no children to dispatch on
        return {}
    return tree


class DocumentTypeResolver:
    """Map an untyped XML tree onto exactly one :data:`XmlDocument` variant."""

    def __init__(self, rules: Sequence[DispatchRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def resolve(self, tree: Mapping[str, Any]) -> XmlDocument:
        for rule in self.rules:
            if rule.matches(tree):
                try:
                    return rule.model.model_validate(dict(tree))
                except ValidationError as exc:
                    raise DocumentValidationError(
                        f"Invalid {rule.model.kind} document: {exc}"
                    ) from exc
        raise UnresolvedXmlType()

    def resolve_stream(self, source: IO[bytes] | bytes) -> XmlDocument:
        return self.resolve(parse_xml(source))


__all__ = [
    "DEFAULT_RULES",
    "DispatchRule",
    "DocumentTypeResolver",
    "XmlTree",
    "element_to_tree",
    "parse_xml",
]
