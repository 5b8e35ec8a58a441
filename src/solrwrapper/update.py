"""Caller-supplied ``<add>`` markup.

``SolrWrapper.index_xml`` accepts pre-built ``<doc>`` fragments. They are
wrapped in ``<add>`` here and read back into plain documents, which both
backends then index like any other document.
"""

from __future__ import annotations

import xml.etree.ElementTree as ElementTree
from datetime import date
from typing import Any

from solrwrapper.models import Document


def wrap_add(doc_xml: str) -> str:
    """Wrap caller-supplied ``<doc>`` markup in an ``<add>`` element."""
    return f"<add>{doc_xml}</add>"


def parse_add(xml: str) -> list[Document]:
    """Read the documents out of an ``<add>`` message.

    Repeated fields become lists; single fields stay scalar strings.
    Raises ``ValueError`` if *xml* is malformed or is not an ``<add>``.
    """
    try:
        root = ElementTree.fromstring(xml)
    except ElementTree.ParseError as exc:
        raise ValueError(f"malformed update XML: {exc}") from exc
    if root.tag != "add":
        raise ValueError(f"expected <add> element, got <{root.tag}>")

    docs: list[Document] = []
    for doc_elem in root.iter("doc"):
        doc: Document = {}
        for field in doc_elem.findall("field"):
            name = field.get("name")
            if not name:
                raise ValueError("<field> element without a name attribute")
            text = field.text or ""
            if name in doc:
                existing = doc[name]
                if isinstance(existing, list):
                    existing.append(text)
                else:
                    doc[name] = [existing, text]
            else:
                doc[name] = text
        docs.append(doc)
    return docs


def field_text(value: Any) -> str:
    """Render one stored field value as text for matching and storage."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
