"""
Pytest configuration and shared fixtures.

``FakeSolr`` stands in for a remote Solr core behind ``httpx.MockTransport``
so the remote backend can be exercised without a server. Updates go through
``pysolr``, which is replaced by a mock in the ``solr_updates`` fixture.
"""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock
from urllib.parse import parse_qsl

import httpx
import pysolr
import pytest

from solrwrapper.config import SolrConfig


class FakeSolr:
    """Minimal Solr core: answers ping and select, records every request."""

    def __init__(self, docs: list[dict] | None = None, num_found: int | None = None) -> None:
        self.docs = docs or []
        self.num_found = num_found if num_found is not None else len(self.docs)
        self.requests: list[httpx.Request] = []
        self.fail: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, status in self.fail.items():
            if path.endswith(suffix):
                return httpx.Response(
                    status, json={"error": {"msg": f"boom on {suffix}", "code": status}}
                )
        if path.endswith("/admin/ping"):
            return httpx.Response(200, json={"responseHeader": {"status": 0}, "status": "OK"})
        if path.endswith("/select"):
            return httpx.Response(
                200,
                json={
                    "responseHeader": {"status": 0, "QTime": 3},
                    "response": {
                        "numFound": self.num_found,
                        "start": 0,
                        "maxScore": 2.5,
                        "docs": self.docs,
                    },
                },
            )
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    @staticmethod
    def form(request: httpx.Request) -> dict[str, str]:
        return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def fake_solr() -> FakeSolr:
    return FakeSolr(
        docs=[
            {"id": "15342797", "text": ["DNA polymerase activity"], "score": 2.5},
            {"id": "15342798", "text": ["RNA splicing"], "score": 1.1},
        ]
    )


@pytest.fixture
def remote_config() -> SolrConfig:
    return SolrConfig(server_url="http://solr:8983/solr/genomics")


@pytest.fixture
def solr_updates(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace ``pysolr.Solr`` with a factory returning one shared mock client."""
    client = MagicMock(spec=pysolr.Solr)
    client.session = None
    factory = MagicMock(return_value=client)
    monkeypatch.setattr(pysolr, "Solr", factory)
    return client


@pytest.fixture
def core_dir(tmp_path: Path) -> Path:
    return tmp_path / "core"


@pytest.fixture(autouse=True)
def _reset_solrwrapper_logger():
    """Undo ``configure_logging`` so later tests can rely on ``caplog``."""
    yield
    logger = logging.getLogger("solrwrapper")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
