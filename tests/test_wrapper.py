"""Tests for solrwrapper.wrapper -- SolrWrapper and the one-shot search().

Remote mode runs against ``FakeSolr`` over httpx MockTransport, with pysolr
updates mocked by the ``solr_updates`` fixture; embedded mode runs against
a core in ``tmp_path``. No real Solr is required.
"""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pysolr
import pytest

from conftest import FakeSolr
from solrwrapper import SolrWrapper, search
from solrwrapper.backends.embedded import EmbeddedBackend
from solrwrapper.backends.mock import MockBackend
from solrwrapper.backends.solr import SolrBackend
from solrwrapper.config import SolrConfig
from solrwrapper.models import (
    SearchResult,
    SolrConnectionError,
    SolrIndexError,
    SolrQueryError,
)


def _mock_wrapper(**kwargs: object) -> tuple[SolrWrapper, MockBackend]:
    backend = MockBackend(**kwargs)  # type: ignore[arg-type]
    return SolrWrapper(SolrConfig(), backend=backend), backend


class TestRunQuery:
    def test_escaped_text_reaches_backend(self) -> None:
        solr, backend = _mock_wrapper()
        solr.run_query("DNA/RNA", 10)
        assert backend.queries == ["DNA RNA"]

    def test_all_special_chars_escaped(self) -> None:
        solr, backend = _mock_wrapper()
        solr.run_query("what's [new]? a/b", 10)
        assert backend.queries == ["whats  new   a b"]

    def test_result_carries_caller_text(self) -> None:
        solr, _ = _mock_wrapper(docs=[{"id": "1"}])
        result = solr.run_query("DNA/RNA", 10)
        assert isinstance(result, SearchResult)
        assert result.query == "DNA/RNA"
        assert result.ids == ["1"]

    def test_default_fields_all_plus_score(self) -> None:
        solr, backend = _mock_wrapper()
        solr.run_query("gene", 10)
        assert backend.fields == [("*", "score")]

    def test_explicit_fields(self) -> None:
        solr, backend = _mock_wrapper()
        solr.run_query("gene", 10, ["id", "title"])
        assert backend.fields == [("id", "title")]

    def test_max_results_defaults_to_config_rows(self) -> None:
        backend = MockBackend(docs=[{"id": str(i)} for i in range(20)])
        solr = SolrWrapper(SolrConfig(rows=3), backend=backend)
        assert len(solr.run_query("gene")) == 3

    def test_max_results_must_be_positive(self) -> None:
        solr, _ = _mock_wrapper()
        with pytest.raises(ValueError, match="max_results"):
            solr.run_query("gene", 0)

    def test_empty_query_raises(self) -> None:
        solr, _ = _mock_wrapper()
        with pytest.raises(ValueError, match="non-empty"):
            solr.run_query("   ", 10)

    def test_query_too_long_raises(self) -> None:
        backend = MockBackend()
        solr = SolrWrapper(SolrConfig(max_query_length=5), backend=backend)
        with pytest.raises(ValueError, match="exceeds maximum"):
            solr.run_query("x" * 6, 10)

    def test_logs_operation(self, caplog: pytest.LogCaptureFixture) -> None:
        solr, _ = _mock_wrapper(docs=[{"id": "1"}], num_found=4)
        with caplog.at_level(logging.INFO, logger="solrwrapper"):
            solr.run_query("gene", 10)
        record = next(r for r in caplog.records if r.getMessage().startswith("select"))
        assert record.num_found == 4  # type: ignore[attr-defined]
        assert record.returned == 1  # type: ignore[attr-defined]
        assert "elapsed_ms=" in record.getMessage()


class TestGetFieldValue:
    def test_queries_by_quoted_id(self) -> None:
        solr, backend = _mock_wrapper(docs=[{"text": ["first", "second"]}])
        value = solr.get_field_value("15342797", "text")
        assert backend.queries == ['id:"15342797"']
        assert backend.fields == [("text",)]
        assert value == "first"

    def test_id_not_escaped(self) -> None:
        solr, backend = _mock_wrapper()
        solr.get_field_value("/solutions/1?", "text")
        assert backend.queries == ['id:"/solutions/1?"']

    def test_missing_document_returns_none(self) -> None:
        solr, _ = _mock_wrapper()
        assert solr.get_field_value("nope", "text") is None

    def test_missing_field_returns_none(self) -> None:
        solr, _ = _mock_wrapper(docs=[{"id": "1"}])
        assert solr.get_field_value("1", "text") is None

    def test_get_doc_text(self) -> None:
        solr, _ = _mock_wrapper(docs=[{"text": "abstract"}])
        assert solr.get_doc_text("1") == "abstract"

    def test_get_doc_text_missing(self) -> None:
        solr, _ = _mock_wrapper()
        assert solr.get_doc_text("1") == ""


class TestUpdates:
    def test_index_document(self) -> None:
        solr, backend = _mock_wrapper()
        solr.index_document({"id": "42", "text": "hello"})
        assert backend.added == [{"id": "42", "text": "hello"}]
        assert backend.commits == 0

    def test_index_documents_batches(self) -> None:
        solr, backend = _mock_wrapper()
        solr.index_documents([{"id": "1"}, {"id": "2"}])
        assert [d["id"] for d in backend.added] == ["1", "2"]

    def test_index_document_requires_id(self) -> None:
        solr, backend = _mock_wrapper()
        with pytest.raises(ValueError, match="'id'"):
            solr.index_document({"text": "anonymous"})
        assert backend.added == []

    def test_index_document_requires_mapping(self) -> None:
        solr, _ = _mock_wrapper()
        with pytest.raises(TypeError, match="mapping"):
            solr.index_document(["id", "1"])  # type: ignore[arg-type]

    def test_index_xml_wraps_in_add(self) -> None:
        solr, backend = _mock_wrapper()
        solr.index_xml('<doc><field name="id">1</field></doc>')
        assert backend.added_xml == ['<add><doc><field name="id">1</field></doc></add>']

    def test_commit(self) -> None:
        solr, backend = _mock_wrapper()
        solr.commit()
        assert backend.commits == 1

    def test_delete_by_query_escapes(self) -> None:
        solr, backend = _mock_wrapper()
        solr.delete_by_query("source:'pubmed/2012'")
        assert backend.deleted_queries == ["source:pubmed 2012"]

    def test_delete_by_id_not_escaped(self) -> None:
        solr, backend = _mock_wrapper()
        solr.delete_by_id("a/b")
        assert backend.deleted_ids == ["a/b"]


class TestLifecycle:
    def test_injected_backend_not_closed(self) -> None:
        solr, backend = _mock_wrapper()
        solr.close()
        assert backend.closed is False

    def test_closed_wrapper_raises(self) -> None:
        solr, _ = _mock_wrapper()
        solr.close()
        with pytest.raises(RuntimeError, match="closed"):
            solr.run_query("gene", 10)

    def test_close_is_idempotent(self) -> None:
        solr, _ = _mock_wrapper()
        solr.close()
        solr.close()

    def test_backend_property(self) -> None:
        solr, backend = _mock_wrapper()
        assert solr.backend is backend
        assert solr.mode == "mock"

    def test_check_health_describes_injected_backend(self) -> None:
        solr, _ = _mock_wrapper(num_found=3)
        info = solr.check_health()
        assert info == {"mode": "mock", "status": "healthy", "num_docs": 3}

    def test_check_health_reports_injected_core(self, core_dir: Path) -> None:
        config = SolrConfig(server_url="http://solr:8983/solr/genomics")
        with EmbeddedBackend(core_dir) as backend:
            info = SolrWrapper(config, backend=backend).check_health()
        assert info["core"] == str(core_dir)
        assert "url" not in info


class TestEmbeddedMode:
    def _config(self, core: Path) -> SolrConfig:
        return SolrConfig(embedded=True, core=str(core))

    def test_embedded_without_core_is_config_error(self) -> None:
        with pytest.raises(ValueError, match="core must be set"):
            SolrWrapper(SolrConfig(embedded=True))

    def test_builds_embedded_backend(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            assert isinstance(solr.backend, EmbeddedBackend)
            assert solr.mode == "embedded"

    def test_index_commit_query(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_document({"id": "42", "text": "hello"})
            solr.commit()
            result = solr.run_query("hello", 10)
        assert "42" in result.ids

    def test_index_without_commit_not_visible(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_document({"id": "42", "text": "hello"})
            assert solr.run_query("hello", 10).num_found == 0

    def test_get_field_value_round_trip(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_document({"id": "15342797", "text": ["abstract one", "abstract two"]})
            solr.commit()
            assert solr.get_field_value("15342797", "text") == "abstract one"
            assert solr.get_field_value("missing", "text") is None

    @pytest.mark.parametrize(("stored", "wanted"), [("doc-1", "doc"), ("4 2", "4")])
    def test_get_field_value_needs_exact_id(
        self, core_dir: Path, stored: str, wanted: str
    ) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_document({"id": stored, "text": "hello"})
            solr.commit()
            assert solr.get_field_value(wanted, "text") is None
            assert solr.get_field_value(stored, "text") == "hello"

    def test_escaped_query_matches(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_documents(
                [{"id": "1", "text": "DNA repair"}, {"id": "2", "text": "protein folding"}]
            )
            solr.commit()
            assert solr.run_query("DNA/RNA", 10).ids == ["1"]

    def test_delete_by_query(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_documents([{"id": "1", "text": "old"}, {"id": "2", "text": "new"}])
            solr.commit()
            solr.delete_by_query("text:old")
            solr.commit()
            assert solr.run_query("*:*", 10).ids == ["2"]

    def test_close_shuts_down_core(self, core_dir: Path) -> None:
        solr = SolrWrapper(self._config(core_dir))
        backend = solr.backend
        solr.close()
        with pytest.raises(SolrConnectionError):
            backend.ping()

    def test_check_health(self, core_dir: Path) -> None:
        with SolrWrapper(self._config(core_dir)) as solr:
            solr.index_document({"id": "1"})
            solr.commit()
            info = solr.check_health()
        assert info["status"] == "healthy"
        assert info["mode"] == "embedded"
        assert info["num_docs"] == 1
        assert info["core"] == str(core_dir)

    def test_bad_core_fails_at_construction(self, tmp_path: Path) -> None:
        path = tmp_path / "file"
        path.write_text("x")
        with pytest.raises(SolrConnectionError):
            SolrWrapper(self._config(path))


class TestRemoteMode:
    def test_pings_on_construction(self, fake_solr: FakeSolr, remote_config: SolrConfig) -> None:
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            assert isinstance(solr.backend, SolrBackend)
        assert fake_solr.requests[0].url.path == "/solr/genomics/admin/ping"

    def test_unreachable_server_fails_at_construction(self, remote_config: SolrConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        with pytest.raises(SolrConnectionError, match="Cannot connect"):
            SolrWrapper(remote_config, _transport=httpx.MockTransport(handler))

    def test_server_port_applied(self, fake_solr: FakeSolr) -> None:
        config = SolrConfig(server_url="http://solr/solr/genomics", server_port=9080)
        with SolrWrapper(config, _transport=fake_solr.transport):
            pass
        assert fake_solr.requests[0].url.port == 9080

    def test_run_query(self, fake_solr: FakeSolr, remote_config: SolrConfig) -> None:
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            result = solr.run_query("DNA/RNA", 5)
        (request,) = fake_solr.requests_to("/select")
        assert fake_solr.form(request)["q"] == "DNA RNA"
        assert result.query == "DNA/RNA"
        assert result.ids == ["15342797", "15342798"]

    def test_get_field_value_sends_whole_id(
        self, fake_solr: FakeSolr, remote_config: SolrConfig
    ) -> None:
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            solr.get_field_value("4 2", "text")
        form = fake_solr.form(fake_solr.requests_to("/select")[0])
        assert form["q"] == 'id:"4 2"'
        assert form["rows"] == "1"
        assert form["fl"] == "text"

    def test_query_failure(self, fake_solr: FakeSolr, remote_config: SolrConfig) -> None:
        fake_solr.fail["/select"] = 500
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            with pytest.raises(SolrQueryError, match="500"):
                solr.run_query("gene", 5)

    def test_index_failure_propagates(
        self, fake_solr: FakeSolr, remote_config: SolrConfig, solr_updates: MagicMock
    ) -> None:
        error = pysolr.SolrError("Solr responded with an error (HTTP 400): [Reason: bad doc]")
        solr_updates.add.side_effect = error
        solr_updates.commit.side_effect = error
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            with pytest.raises(SolrIndexError, match="400"):
                solr.index_document({"id": "1"})
            with pytest.raises(SolrIndexError):
                solr.commit()

    def test_index_then_commit(
        self, fake_solr: FakeSolr, remote_config: SolrConfig, solr_updates: MagicMock
    ) -> None:
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            solr.index_xml('<doc><field name="id">42</field><field name="text">hi</field></doc>')
            solr.delete_by_query("source:'pubmed/2012'")
            solr.commit()
        solr_updates.add.assert_called_once_with([{"id": "42", "text": "hi"}], commit=False)
        solr_updates.delete.assert_called_once_with(q="source:pubmed 2012", commit=False)
        solr_updates.commit.assert_called_once_with()

    def test_shared_http_client(self, fake_solr: FakeSolr, remote_config: SolrConfig) -> None:
        client = httpx.Client(transport=fake_solr.transport)
        with SolrWrapper(remote_config, http_client=client) as a:
            a.run_query("gene", 1)
        with SolrWrapper(remote_config, http_client=client) as b:
            b.run_query("gene", 1)
        assert not client.is_closed
        assert len(fake_solr.requests_to("/select")) == 2
        client.close()

    def test_check_health_unhealthy(self, fake_solr: FakeSolr, remote_config: SolrConfig) -> None:
        with SolrWrapper(remote_config, _transport=fake_solr.transport) as solr:
            fake_solr.fail["/admin/ping"] = 503
            info = solr.check_health()
        assert info["status"] == "unhealthy"
        assert info["url"] == "http://solr:8983/solr/genomics"
        assert "503" in str(info["error"])


class TestModuleLevelSearch:
    def test_search_remote(self, fake_solr: FakeSolr, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SOLRWRAPPER_EMBEDDED", raising=False)
        result = search(
            "gene/protein",
            1,
            server_url="http://solr:8983/solr/genomics",
            _transport_override=fake_solr.transport,
        )
        assert result.query == "gene/protein"
        assert fake_solr.form(fake_solr.requests_to("/select")[0])["q"] == "gene protein"

    def test_search_embedded(self, core_dir: Path) -> None:
        with SolrWrapper(SolrConfig(embedded=True, core=str(core_dir))) as solr:
            solr.index_document({"id": "42", "text": "hello"})
            solr.commit()
        result = search("hello", embedded=True, core=str(core_dir))
        assert result.ids == ["42"]
