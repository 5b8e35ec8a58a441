"""Connection handles for :class:`~solrwrapper.wrapper.SolrWrapper`.

The :class:`SearchBackend` protocol is the contract every handle satisfies.
:class:`~solrwrapper.backends.solr.SolrBackend` talks to a remote Solr core
over HTTP; :class:`~solrwrapper.backends.embedded.EmbeddedBackend` runs an
index inside the current process and owns its lifecycle.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from solrwrapper.models import Document, SearchResult


@runtime_checkable
class SearchBackend(Protocol):
    """Protocol for connection handles used by :class:`~solrwrapper.wrapper.SolrWrapper`.

    ``query`` strings reach the backend already escaped. Add and delete
    requests are only visible to ``select`` after ``commit``.
    """

    mode: str

    def ping(self) -> None: ...

    def select(self, query: str, rows: int, fields: Sequence[str]) -> SearchResult: ...

    def add(self, docs: Sequence[Document]) -> None: ...

    def add_xml(self, xml: str) -> None: ...

    def commit(self) -> None: ...

    def delete_by_query(self, query: str) -> None: ...

    def delete_by_id(self, doc_id: str) -> None: ...

    def close(self) -> None: ...


__all__ = ["SearchBackend"]
