"""In-memory mock backend for testing without a search engine."""

from __future__ import annotations

from collections.abc import Sequence

from solrwrapper.models import Document, SearchResult


class MockBackend:
    """A :class:`~solrwrapper.backends.SearchBackend` that returns canned results.

    Every call is recorded so tests can assert on exactly what the facade
    sent down, e.g. the escaped query text.

    Usage::

        backend = MockBackend(docs=[{"id": "1", "text": "hello"}])
        result = backend.select("hello", rows=5, fields=("*", "score"))
        assert backend.queries == ["hello"]
    """

    mode = "mock"

    def __init__(
        self,
        docs: list[Document] | None = None,
        num_found: int | None = None,
    ) -> None:
        self._docs = docs or []
        self._num_found = num_found if num_found is not None else len(self._docs)
        self.queries: list[str] = []
        self.fields: list[tuple[str, ...]] = []
        self.added: list[Document] = []
        self.added_xml: list[str] = []
        self.deleted_queries: list[str] = []
        self.deleted_ids: list[str] = []
        self.commits = 0
        self.pings = 0
        self.closed = False

    def ping(self) -> None:
        self.pings += 1

    def select(self, query: str, rows: int, fields: Sequence[str]) -> SearchResult:
        self.queries.append(query)
        self.fields.append(tuple(fields))
        return SearchResult(query=query, num_found=self._num_found, docs=self._docs[:rows])

    def add(self, docs: Sequence[Document]) -> None:
        self.added.extend(docs)

    def add_xml(self, xml: str) -> None:
        self.added_xml.append(xml)

    def commit(self) -> None:
        self.commits += 1

    def delete_by_query(self, query: str) -> None:
        self.deleted_queries.append(query)

    def delete_by_id(self, doc_id: str) -> None:
        self.deleted_ids.append(doc_id)

    def close(self) -> None:
        self.closed = True
