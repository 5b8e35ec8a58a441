"""
Data models and exception hierarchy for the Solr wrapper.

All public types used by the solrwrapper library are defined here. Results
are frozen dataclasses so they can be handed across threads safely.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import asdict, dataclass, field
from typing import Any

Document = dict[str, Any]

DEFAULT_FIELDS: tuple[str, ...] = ("*", "score")

# Characters the query parser would read as wildcard, range or regex syntax.
_SPACED_CHARS = str.maketrans({"?": " ", "[": " ", "]": " ", "/": " ", "'": None})

_PHRASE_ESCAPE_RE = re.compile(r'(["\\])')


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SolrError(Exception):
    """Base exception for all Solr wrapper errors."""


class SolrConnectionError(SolrError):
    """The search engine could not be reached or initialized."""


class _RequestError(SolrError):
    def __init__(self, message: str, status_code: int | None = None, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail[:2000]
        if status_code is not None:
            message = f"{message}: HTTP {status_code}: {self.detail}"
        super().__init__(message)


class SolrQueryError(_RequestError):
    """A query could not be executed (transport failure, HTTP error or bad response)."""


class SolrIndexError(_RequestError):
    """An add, commit or delete request was rejected or could not be sent."""


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SearchResult:
    """Documents matching a query, in the engine's relevance order.

    ``num_found`` is the total number of matches, which may be larger than
    ``len(docs)`` when the result was limited by ``rows``.
    """

    query: str
    num_found: int
    docs: list[Document] = field(default_factory=list)
    max_score: float | None = None

    def __len__(self) -> int:
        return len(self.docs)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.docs)

    @property
    def ids(self) -> list[Any]:
        return [d.get("id") for d in self.docs]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dict (e.g. for JSON output)."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Query text helpers
# ---------------------------------------------------------------------------


def escape_query(text: str) -> str:
    """Neutralize characters the Lucene query parser treats as syntax.

    ``?``, ``[``, ``]`` and ``/`` become spaces and single quotes are
    dropped. Every other character is passed through untouched, so the
    caller can still use field prefixes, boolean operators and phrases.

        >>> escape_query("DNA/RNA")
        'DNA RNA'
    """
    return text.translate(_SPACED_CHARS)


def quote_term(value: str) -> str:
    """Return *value* as a quoted phrase safe to use after ``field:``."""
    return '"' + _PHRASE_ESCAPE_RE.sub(r"\\\1", value) + '"'


def first_value(value: Any) -> Any:
    """Return the first element of a multi-valued field, or the value itself."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value
