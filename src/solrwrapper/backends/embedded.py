"""In-process search core.

Runs an index inside the calling process, rooted at a core directory the
same way an embedded Solr home is. Committed documents are persisted to
``<core>/index.json`` and reloaded on the next start. Relevance ranking is
BM25+ from ``rank_bm25``, which keeps scores positive on tiny cores.

The query syntax understood here is deliberately small:

* ``*:*`` matches every document;
* ``field:value`` / ``field:"some phrase"`` keep documents whose field
  equals the value or contains all of its words (``field:*`` means the
  field is present); ``id`` clauses only match the whole id;
* every other word is free text: a document matches if it contains any
  of them, and matches are ordered by BM25 score over all fields but ``id``.

``AND`` / ``OR`` are ignored.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rank_bm25 import BM25Plus

from solrwrapper import update
from solrwrapper.models import (
    Document,
    SearchResult,
    SolrConnectionError,
    SolrIndexError,
    SolrQueryError,
)

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"

_TOKEN_RE = re.compile(r"\w+")
_QUERY_RE = re.compile(
    r'(?P<field>\*|\w[\w.]*):(?:"(?P<quoted>(?:[^"\\]|\\.)*)"|(?P<bare>\S+))'
    r'|"(?P<phrase>(?:[^"\\]|\\.)*)"'
    r"|(?P<word>\S+)"
)
_UNESCAPE_RE = re.compile(r"\\(.)")
_IGNORED_WORDS = frozenset({"AND", "OR", "&&", "||"})


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _values(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [] if value is None else [value]


def _doc_tokens(doc: Document) -> list[str]:
    tokens: list[str] = []
    for key, value in doc.items():
        if key == "id":
            continue
        for v in _values(value):
            tokens.extend(tokenize(update.field_text(v)))
    return tokens


@dataclass
class _ParsedQuery:
    match_all: bool = False
    clauses: list[tuple[str, str]] = field(default_factory=list)
    terms: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.match_all or self.clauses or self.terms)

    def matches(self, doc: Document, token_set: set[str]) -> bool:
        if self.empty:
            return False
        for name, value in self.clauses:
            if not _clause_matches(doc.get(name), value, exact=name == "id"):
                return False
        if self.terms and not token_set.intersection(self.terms):
            return False
        return True


def _clause_matches(stored: Any, value: str, exact: bool = False) -> bool:
    values = _values(stored)
    if value == "*":
        return bool(values)
    wanted = tokenize(value)
    for v in values:
        text = update.field_text(v)
        if text == value:
            return True
        # ids are keys, never tokenized
        if not exact and wanted and set(wanted) <= set(tokenize(text)):
            return True
    return False


def parse_query(query: str) -> _ParsedQuery:
    parsed = _ParsedQuery()
    for m in _QUERY_RE.finditer(query):
        if m.group("field") is not None:
            raw = m.group("quoted")
            if raw is None:
                raw = m.group("bare")
            value = _UNESCAPE_RE.sub(r"\1", raw)
            if m.group("field") == "*":
                if value == "*":
                    parsed.match_all = True
                else:
                    parsed.terms.extend(tokenize(value))
            else:
                parsed.clauses.append((m.group("field"), value))
        elif m.group("phrase") is not None:
            parsed.terms.extend(tokenize(_UNESCAPE_RE.sub(r"\1", m.group("phrase"))))
        elif m.group("word") not in _IGNORED_WORDS:
            parsed.terms.extend(tokenize(m.group("word")))
    return parsed


def _project(doc: Document, fields: Sequence[str], score: float) -> Document:
    want_all = "*" in fields
    out = {k: copy.deepcopy(v) for k, v in doc.items() if want_all or k in fields}
    if "score" in fields:
        out["score"] = score
    return out


class EmbeddedBackend:
    """Search core living in this process.

    The backend owns the core: :meth:`shutdown` must be called to release
    it (``close`` is an alias). Adds and deletes are buffered and only
    become visible to :meth:`select` after :meth:`commit`. All state is
    guarded by a single lock, so one instance can be shared across threads.
    """

    mode = "embedded"

    def __init__(self, core: str | os.PathLike[str]) -> None:
        self._core = Path(core)
        self._lock = threading.RLock()
        self._pending: list[tuple[str, Any]] = []
        self._closed = False
        try:
            self._core.mkdir(parents=True, exist_ok=True)
            self._docs = self._load()
        except (OSError, ValueError) as exc:
            raise SolrConnectionError(
                f"Cannot initialize embedded core at {self._core}: {exc}"
            ) from exc
        self._rebuild()
        logger.debug("EmbeddedBackend opened core=%s num_docs=%d", self._core, len(self._docs))

    @property
    def core(self) -> Path:
        return self._core

    @property
    def num_docs(self) -> int:
        """Number of committed documents."""
        with self._lock:
            return len(self._docs)

    @property
    def num_pending(self) -> int:
        """Number of buffered add/delete operations awaiting commit."""
        with self._lock:
            return len(self._pending)

    # -- Storage -------------------------------------------------------------

    def _load(self) -> dict[str, Document]:
        path = self._core / INDEX_FILE
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict) or not isinstance(data.get("docs"), list):
            raise ValueError(f"{path} is not a valid index file")
        return {str(d["id"]): d for d in data["docs"] if isinstance(d, dict) and "id" in d}

    def _persist(self, docs: dict[str, Document]) -> None:
        path = self._core / INDEX_FILE
        tmp = path.with_suffix(".tmp")
        tmp.write_text(
            json.dumps({"docs": list(docs.values())}, default=update.field_text),
            encoding="utf-8",
        )
        os.replace(tmp, path)

    def _rebuild(self) -> None:
        self._ids = list(self._docs)
        tokens = [_doc_tokens(self._docs[i]) for i in self._ids]
        self._token_sets = [set(t) for t in tokens]
        # BM25Plus cannot be built over a corpus without a single term.
        self._bm25 = BM25Plus(tokens) if any(tokens) else None

    def _check_open(self) -> None:
        if self._closed:
            raise SolrConnectionError(f"Embedded core at {self._core} has been shut down")

    # -- Protocol methods ----------------------------------------------------

    def ping(self) -> None:
        with self._lock:
            self._check_open()

    def select(self, query: str, rows: int, fields: Sequence[str]) -> SearchResult:
        with self._lock:
            try:
                self._check_open()
            except SolrConnectionError as exc:
                raise SolrQueryError(str(exc)) from exc

            parsed = parse_query(query)
            hits = [
                n
                for n, doc_id in enumerate(self._ids)
                if parsed.matches(self._docs[doc_id], self._token_sets[n])
            ]
            if parsed.terms and hits and self._bm25 is not None:
                all_scores = self._bm25.get_scores(parsed.terms)
                scores = {n: float(all_scores[n]) for n in hits}
                hits.sort(key=lambda n: scores[n], reverse=True)
            else:
                scores = {n: 1.0 for n in hits}

            docs = [_project(self._docs[self._ids[n]], fields, scores[n]) for n in hits[:rows]]
            max_score = max(scores.values()) if scores else None
            return SearchResult(query=query, num_found=len(hits), docs=docs, max_score=max_score)

    def add(self, docs: Sequence[Document]) -> None:
        with self._lock:
            self._check_writable()
            staged = []
            for doc in docs:
                if doc.get("id") is None:
                    raise SolrIndexError("Document is missing required field 'id'")
                staged.append(("add", copy.deepcopy(dict(doc))))
            self._pending.extend(staged)

    def add_xml(self, xml: str) -> None:
        try:
            docs = update.parse_add(xml)
        except ValueError as exc:
            raise SolrIndexError(f"Embedded core rejected update: {exc}") from exc
        self.add(docs)

    def commit(self) -> None:
        with self._lock:
            self._check_writable()
            docs = dict(self._docs)
            for op, arg in self._pending:
                if op == "add":
                    docs[str(arg["id"])] = arg
                elif op == "delete_id":
                    docs.pop(str(arg), None)
                else:
                    parsed = parse_query(arg)
                    for doc_id in [
                        i for i, d in docs.items() if parsed.matches(d, set(_doc_tokens(d)))
                    ]:
                        del docs[doc_id]
            try:
                self._persist(docs)
            except (OSError, TypeError, ValueError) as exc:
                raise SolrIndexError(f"Cannot write embedded core at {self._core}: {exc}") from exc
            logger.debug(
                "EmbeddedBackend commit core=%s ops=%d num_docs=%d",
                self._core,
                len(self._pending),
                len(docs),
            )
            self._docs = docs
            self._pending.clear()
            self._rebuild()

    def delete_by_query(self, query: str) -> None:
        with self._lock:
            self._check_writable()
            self._pending.append(("delete_query", query))

    def delete_by_id(self, doc_id: str) -> None:
        with self._lock:
            self._check_writable()
            self._pending.append(("delete_id", doc_id))

    def _check_writable(self) -> None:
        try:
            self._check_open()
        except SolrConnectionError as exc:
            raise SolrIndexError(str(exc)) from exc

    # -- Lifecycle -----------------------------------------------------------

    def shutdown(self) -> None:
        """Release the core. Uncommitted operations are discarded."""
        with self._lock:
            if self._closed:
                return
            if self._pending:
                logger.warning(
                    "EmbeddedBackend discarding %d uncommitted operations core=%s",
                    len(self._pending),
                    self._core,
                )
                self._pending.clear()
            self._closed = True
            self._docs = {}
            self._rebuild()
            logger.debug("EmbeddedBackend shut down core=%s", self._core)

    close = shutdown

    def __enter__(self) -> EmbeddedBackend:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()
