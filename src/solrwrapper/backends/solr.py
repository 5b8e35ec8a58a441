"""Remote Solr backend.

Talks to one Solr core over HTTP. Pings and queries go through ``httpx``:
``/select`` is called with form-encoded POSTs and JSON responses. Adds,
commits and deletes go through ``pysolr``, which owns the update message
format and field value conversion.
"""

from __future__ import annotations

import importlib.metadata
import logging
from collections.abc import Sequence
from typing import Any, NoReturn

import httpx
import pysolr

from solrwrapper import update
from solrwrapper.config import SolrConfig
from solrwrapper.models import (
    Document,
    SearchResult,
    SolrConnectionError,
    SolrIndexError,
    SolrQueryError,
)

logger = logging.getLogger(__name__)

try:
    _PKG_VERSION = importlib.metadata.version("solrwrapper")
except importlib.metadata.PackageNotFoundError:
    _PKG_VERSION = "dev"

_USER_AGENT = f"solrwrapper/{_PKG_VERSION}"


def _error_detail(response: httpx.Response) -> str:
    """Pull Solr's own error message out of a failed response if it sent one."""
    try:
        msg = response.json()["error"]["msg"]
    except (ValueError, KeyError, TypeError):
        return response.text[:500]
    return str(msg)


def _raise_request_error(
    exc: httpx.HTTPError,
    error_cls: type[SolrQueryError] | type[SolrIndexError],
    action: str,
    url: str,
) -> NoReturn:
    """Map httpx exceptions to wrapper exceptions. Always raises."""
    if isinstance(exc, httpx.HTTPStatusError):
        raise error_cls(
            f"Solr {action} failed", exc.response.status_code, _error_detail(exc.response)
        ) from exc
    if isinstance(exc, httpx.ConnectError):
        raise error_cls(f"Cannot connect to Solr at {url}: {exc}") from exc
    if isinstance(exc, httpx.TimeoutException):
        raise error_cls(f"Timeout talking to Solr at {url}: {exc}") from exc
    raise error_cls(f"Solr {action} failed: {exc}") from exc


def _parse_select(query: str, data: Any) -> SearchResult:
    response = data.get("response") if isinstance(data, dict) else None
    if not isinstance(response, dict):
        raise SolrQueryError(
            f"Expected 'response' object in Solr JSON, got {type(response).__name__}",
            detail=str(data),
        )

    num_found = response.get("numFound", 0)
    if not isinstance(num_found, int):
        num_found = 0

    raw_docs = response.get("docs", [])
    if not isinstance(raw_docs, list):
        raw_docs = []

    docs: list[Document] = []
    for d in raw_docs:
        if not isinstance(d, dict):
            logger.warning("Skipping non-dict document in Solr response")
            continue
        docs.append(d)

    max_score = response.get("maxScore")
    if not isinstance(max_score, (int, float)):
        max_score = None

    return SearchResult(query=query, num_found=num_found, docs=docs, max_score=max_score)


class SolrBackend:
    """Connection handle for a Solr core reached over HTTP.

    The remote server's lifecycle is never managed here. The HTTP
    connection pool is: when *client* is omitted a pooled ``httpx.Client``
    is built from the config and closed by :meth:`close`; a client passed
    in by the caller is shared and left open. The ``pysolr.Solr`` used for
    updates never commits on its own and its session is closed with the
    handle.
    """

    mode = "remote"

    def __init__(
        self,
        config: SolrConfig,
        *,
        client: httpx.Client | None = None,
        _transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._url = config.url

        if client is not None:
            self._client = client
            self._owns_client = False
        else:
            timeout = httpx.Timeout(
                connect=config.timeout_connect,
                read=config.timeout_read,
                pool=config.timeout_pool,
                write=config.timeout_read,
            )
            limits = httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_keepalive,
            )
            transport = _transport or httpx.HTTPTransport(
                retries=config.retries,
                verify=config.verify_ssl,  # type: ignore[arg-type]
                limits=limits,
            )
            self._client = httpx.Client(
                transport=transport,
                timeout=timeout,
                headers={"Accept": "application/json", "User-Agent": _USER_AGENT},
            )
            self._owns_client = True

        self._solr = pysolr.Solr(
            self._url,
            timeout=(config.timeout_connect, config.timeout_read),
            verify=config.verify_ssl,
            always_commit=False,
        )

        logger.debug(
            "SolrBackend created url=%s owns_client=%s max_connections=%d retries=%d",
            self._url,
            self._owns_client,
            config.max_connections,
            config.retries,
        )

    @property
    def url(self) -> str:
        return self._url

    # -- Protocol methods ----------------------------------------------------

    def ping(self) -> None:
        """Check that the core answers its ping handler."""
        try:
            resp = self._client.get(f"{self._url}/admin/ping", params={"wt": "json"})
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SolrConnectionError(
                f"Solr at {self._url} failed ping: HTTP {exc.response.status_code}: "
                f"{_error_detail(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SolrConnectionError(f"Cannot connect to Solr at {self._url}: {exc}") from exc

    def select(self, query: str, rows: int, fields: Sequence[str]) -> SearchResult:
        params = {"q": query, "rows": rows, "fl": ",".join(fields), "wt": "json"}
        try:
            resp = self._client.post(f"{self._url}/select", data=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            _raise_request_error(exc, SolrQueryError, "query", self._url)
        except ValueError as exc:
            raise SolrQueryError(f"Failed to decode Solr response: {exc}") from exc
        return _parse_select(query, data)

    def add(self, docs: Sequence[Document]) -> None:
        self._update("add", self._solr.add, list(docs), commit=False)

    def add_xml(self, xml: str) -> None:
        try:
            docs = update.parse_add(xml)
        except ValueError as exc:
            raise SolrIndexError(f"Rejected update XML: {exc}") from exc
        self.add(docs)

    def commit(self) -> None:
        self._update("commit", self._solr.commit)

    def delete_by_query(self, query: str) -> None:
        self._update("delete", self._solr.delete, q=query, commit=False)

    def delete_by_id(self, doc_id: str) -> None:
        self._update("delete", self._solr.delete, id=doc_id, commit=False)

    def _update(self, action: str, call: Any, *args: Any, **kwargs: Any) -> None:
        logger.debug("SolrBackend %s url=%s", action, self._url)
        try:
            call(*args, **kwargs)
        except pysolr.SolrError as exc:
            raise SolrIndexError(f"Solr {action} failed: {exc}") from exc

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
        # pysolr opens its requests session lazily, on the first update
        if self._solr.session is not None:
            self._solr.session.close()

    def __enter__(self) -> SolrBackend:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
