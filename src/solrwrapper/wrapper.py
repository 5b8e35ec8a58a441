"""
Solr facade: one connection handle, query/index/commit/delete pass-through.

Provides ``SolrWrapper`` for servers and pipelines (one shared handle with
connection pooling, validated config, context manager support) and the
module-level convenience function ``search()`` for one-shot use.

Usage:
    # One-shot (creates and closes a wrapper per call):
    from solrwrapper import search
    result = search("DNA/RNA polymerase", server_url="http://solr:8983/solr/genomics")

    # Persistent wrapper (recommended):
    from solrwrapper import SolrConfig, SolrWrapper
    with SolrWrapper(SolrConfig(embedded=True, core="/var/lib/solr/genomics")) as solr:
        solr.index_document({"id": "42", "text": "hello"})
        solr.commit()
        result = solr.run_query("hello", 10)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from contextlib import nullcontext
from dataclasses import replace
from typing import Any

import httpx

from solrwrapper import update
from solrwrapper.backends import SearchBackend
from solrwrapper.backends.embedded import EmbeddedBackend
from solrwrapper.backends.solr import SolrBackend
from solrwrapper.config import SolrConfig
from solrwrapper.logging import log_operation
from solrwrapper.models import (
    DEFAULT_FIELDS,
    Document,
    SearchResult,
    SolrConnectionError,
    SolrError,
    escape_query,
    first_value,
    quote_term,
)

logger = logging.getLogger(__name__)

_otel_tracer: Any = None
try:
    from opentelemetry import trace

    _otel_tracer = trace.get_tracer("solrwrapper")
except ImportError:
    pass


def _otel_span(name: str, **attributes: Any) -> Any:
    """Return an OTel span context manager, or nullcontext if OTel is absent."""
    if _otel_tracer is not None:
        return _otel_tracer.start_as_current_span(
            name, attributes={f"solr.{k}": v for k, v in attributes.items()}
        )
    return nullcontext()


def _validate_text(text: str, what: str, max_length: int) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"{what} must be a non-empty string")
    if len(text) > max_length:
        raise ValueError(f"{what} length {len(text)} exceeds maximum {max_length}")
    return text


def _validate_document(document: Mapping[str, Any]) -> Document:
    if not isinstance(document, Mapping):
        raise TypeError(f"document must be a mapping, got {type(document).__name__}")
    if document.get("id") is None:
        raise ValueError("document must have an 'id' field")
    return dict(document)


# ---------------------------------------------------------------------------
# SolrWrapper
# ---------------------------------------------------------------------------


class SolrWrapper:
    """Facade over a single search connection handle.

    The handle is chosen once, at construction, from ``config``:

    * ``embedded=True``: an in-process core rooted at ``config.core``. The
      wrapper owns it and shuts it down in :meth:`close`.
    * otherwise: a remote Solr core at ``config.url``, pinged immediately so
      an unreachable server fails here rather than on first use. The server
      itself is never shut down. Pass ``http_client`` to share one
      ``httpx.Client`` pool between wrappers; it stays open after ``close``.

    A ready-made ``backend`` may be passed instead; it is used as-is and
    left for the caller to release.

    The wrapper holds no locks and keeps no state besides the handle, so one
    instance may be shared by concurrent callers. Every method blocks until
    the engine answers.
    """

    def __init__(
        self,
        config: SolrConfig | None = None,
        *,
        backend: SearchBackend | None = None,
        http_client: httpx.Client | None = None,
        _transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config or SolrConfig.from_env()
        self._closed = False

        if backend is not None:
            self._backend: SearchBackend = backend
            self._owns_backend = False
            logger.info("Running Solr retrieval on injected %s backend", backend.mode)
        elif self._config.embedded:
            logger.info("Running Solr retrieval on embedded mode core=%s", self._config.core)
            self._backend = EmbeddedBackend(self._config.core)
            self._owns_backend = True
        else:
            logger.info("Running Solr retrieval on remote mode url=%s", self._config.url)
            remote = SolrBackend(self._config, client=http_client, _transport=_transport)
            try:
                remote.ping()
            except SolrConnectionError:
                remote.close()
                raise
            self._backend = remote
            self._owns_backend = True

    @property
    def config(self) -> SolrConfig:
        return self._config

    @property
    def backend(self) -> SearchBackend:
        """The underlying connection handle."""
        return self._backend

    @property
    def mode(self) -> str:
        return self._backend.mode

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("SolrWrapper is closed")

    # -- Queries -------------------------------------------------------------

    def run_query(
        self,
        text: str,
        max_results: int | None = None,
        fields: Sequence[str] | None = None,
    ) -> SearchResult:
        """Run a free-text query and return the best matches.

        Args:
            text: Query text. ``?``, ``[``, ``]`` and ``/`` are replaced by
                spaces and ``'`` is removed before it is sent; everything else
                (field prefixes, operators, phrases) reaches the engine as is.
            max_results: Maximum number of documents (default ``config.rows``).
            fields: Stored fields to return (default all fields plus score).

        Returns:
            SearchResult in descending relevance order. ``result.query`` is
            the caller's text, not the escaped form.

        Raises:
            ValueError: If text is empty or too long, or max_results < 1.
            SolrQueryError: If the query could not be executed.
        """
        self._check_open()
        text = _validate_text(text, "query", self._config.max_query_length)
        rows = max_results if max_results is not None else self._config.rows
        if rows < 1:
            raise ValueError(f"max_results must be >= 1, got {rows}")
        fl = tuple(fields) if fields else DEFAULT_FIELDS

        escaped = escape_query(text)
        with _otel_span("solr.query", query=text, rows=rows, mode=self.mode):
            with log_operation(logger, "select", mode=self.mode, query=text, rows=rows) as op:
                result = self._backend.select(escaped, rows, fl)
                op.add(num_found=result.num_found, returned=len(result.docs))
        return replace(result, query=text)

    def get_field_value(self, doc_id: str, field: str) -> Any:
        """Return the first value of *field* on the document with id *doc_id*.

        Returns ``None`` when no document has that id or the document has no
        such field. A missing document is not an error.
        """
        self._check_open()
        if not field:
            raise ValueError("field must be a non-empty string")
        doc_id = str(doc_id)
        with log_operation(logger, "get", mode=self.mode, doc_id=doc_id, field=field) as op:
            result = self._backend.select(f"id:{quote_term(doc_id)}", 1, (field,))
            op.add(found=bool(result.docs))
        if not result.docs:
            return None
        return first_value(result.docs[0].get(field))

    def get_doc_text(self, doc_id: str) -> str:
        """Return the ``text`` field of a document, or ``""`` if absent."""
        value = self.get_field_value(doc_id, "text")
        return "" if value is None else str(value)

    # -- Updates -------------------------------------------------------------

    def index_document(self, document: Mapping[str, Any]) -> None:
        """Submit one document for indexing.

        The document is not searchable until :meth:`commit` is called.

        Raises:
            ValueError: If the document has no ``id``.
            SolrIndexError: If the engine rejected the add.
        """
        self.index_documents([document])

    def index_documents(self, documents: Iterable[Mapping[str, Any]]) -> None:
        """Submit several documents in one add request (no commit)."""
        self._check_open()
        docs = [_validate_document(d) for d in documents]
        if not docs:
            return
        with log_operation(logger, "add", mode=self.mode, docs=len(docs)):
            self._backend.add(docs)

    def index_xml(self, doc_xml: str) -> None:
        """Submit pre-built ``<doc>`` markup, wrapped in ``<add>`` (no commit)."""
        self._check_open()
        if not doc_xml or not doc_xml.strip():
            raise ValueError("doc_xml must be a non-empty string")
        with log_operation(logger, "add_xml", mode=self.mode, body_chars=len(doc_xml)):
            self._backend.add_xml(update.wrap_add(doc_xml))

    def commit(self) -> None:
        """Make every pending add and delete visible to queries."""
        self._check_open()
        with log_operation(logger, "commit", mode=self.mode):
            self._backend.commit()

    def delete_by_query(self, query: str) -> None:
        """Delete every document matching *query* (escaped like query text)."""
        self._check_open()
        query = _validate_text(query, "query", self._config.max_query_length)
        with log_operation(logger, "delete", mode=self.mode, query=query):
            self._backend.delete_by_query(escape_query(query))

    def delete_by_id(self, doc_id: str) -> None:
        self._check_open()
        doc_id = str(doc_id)
        if not doc_id:
            raise ValueError("doc_id must be a non-empty string")
        with log_operation(logger, "delete", mode=self.mode, doc_id=doc_id):
            self._backend.delete_by_id(doc_id)

    # -- Health and lifecycle ------------------------------------------------

    def ping(self) -> None:
        """Raise SolrConnectionError unless the engine answers."""
        self._check_open()
        self._backend.ping()

    def check_health(self) -> dict[str, object]:
        """Check engine reachability and report basic status.

        Returns a dict with at minimum ``status`` ("healthy" or "unhealthy")
        and ``mode``, plus the ``core`` or ``url`` of the engine in use. When
        healthy it also includes ``num_docs``, the number of searchable
        documents.
        """
        self._check_open()
        info: dict[str, object] = {"mode": self.mode}
        if isinstance(self._backend, EmbeddedBackend):
            info["core"] = str(self._backend.core)
        elif isinstance(self._backend, SolrBackend):
            info["url"] = self._backend.url
        try:
            self._backend.ping()
            result = self._backend.select("*:*", 1, ("id",))
        except SolrError as exc:
            info.update(status="unhealthy", error=str(exc))
            return info
        info.update(status="healthy", num_docs=result.num_found)
        return info

    def close(self) -> None:
        """Release the handle if this wrapper created it."""
        if self._closed:
            return
        if self._owns_backend:
            self._backend.close()
        self._closed = True
        logger.debug("SolrWrapper closed mode=%s", self.mode)

    def __enter__(self) -> SolrWrapper:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Module-level convenience function
# ---------------------------------------------------------------------------


def search(
    text: str,
    max_results: int | None = None,
    *,
    fields: Sequence[str] | None = None,
    server_url: str | None = None,
    server_port: int | None = None,
    embedded: bool | None = None,
    core: str | None = None,
    _transport_override: httpx.BaseTransport | None = None,
) -> SearchResult:
    """Run one query with a temporary wrapper (one-shot convenience).

    Connection settings fall back to the ``SOLRWRAPPER_*`` environment
    variables. For repeated use, prefer ``SolrWrapper`` which keeps its
    connection pool (or embedded core) open.

    Raises:
        ValueError: If the configuration or the query is invalid.
        SolrConnectionError: If the engine cannot be reached or opened.
        SolrQueryError: If the query fails.
    """
    config = SolrConfig.from_env(
        server_url=server_url, server_port=server_port, embedded=embedded, core=core
    )
    with SolrWrapper(config, _transport=_transport_override) as solr:
        return solr.run_query(text, max_results, fields)
