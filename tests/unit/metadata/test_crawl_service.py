"""Crawl orchestration tests with scripted adapters and a real graph database."""

import asyncio

import pytest

from schemagraph.common.audit import InMemoryAuditSink
from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import CrawlCancelledError, SourceNotFoundError
from schemagraph.dal.credentials import StaticCredentialProvider
from schemagraph.metadata.crawl_service import MetadataCrawlService
from schemagraph.schema.graph import GraphFilter
from schemagraph.schema.sources import ConnectionStatus, CrawlStatus
from schemagraph.schema.warnings import WarningLevel
from tests._support.fakes import (
    COLUMNS,
    FK_TIER1,
    FK_TIER2,
    TABLES_TIER1,
    BrokenConnectionError,
    DeniedError,
    FakeSqlAdapter,
    accounts_adapter,
    column_row,
)
from tests._support.snapshots import register_duckdb_source

SETTINGS = CrawlerSettings()


class AdapterFactory:
    """Hands out one prepared adapter and records how it was requested."""

    def __init__(self, adapter):
        self.adapter = adapter
        self.requests = []

    def __call__(self, kind, config, settings=None, secrets=None):
        self.requests.append((kind, dict(config), dict(secrets or {})))
        return self.adapter


class GatedAdapter(FakeSqlAdapter):
    """Pauses inside the column query until the test opens the gate."""

    def __init__(self, responses):
        super().__init__(responses)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self.events = []

    async def connect(self):
        self.events.append("connect")
        await super().connect()

    async def fetch(self, query, *params):
        if query == COLUMNS:
            self.entered.set()
            await self.gate.wait()
        return await super().fetch(query, *params)


def _service(graph_db, adapter, audit=None, credentials=None):
    factory = AdapterFactory(adapter)
    service = MetadataCrawlService(
        graph_db,
        credentials=credentials,
        audit_sink=audit or InMemoryAuditSink(),
        settings=SETTINGS,
        adapter_factory=factory,
    )
    return service, factory


@pytest.mark.asyncio
async def test_successful_crawl_persists_and_audits(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    audit = InMemoryAuditSink()
    adapter = accounts_adapter(**{FK_TIER1: DeniedError(), FK_TIER2: DeniedError()})
    credentials = StaticCredentialProvider({"src_a": {"password": "s3cret"}})
    service, factory = _service(graph_db, adapter, audit, credentials)

    outcome = await service.crawl_source("src_a")

    assert (outcome.tables, outcome.columns, outcome.foreign_keys) == (1, 2, 0)
    assert [w.feature for w in outcome.warnings] == ["foreign_keys_tier1", "foreign_keys"]
    assert outcome.available_features.has_comments is True
    assert outcome.available_features.has_permission_errors is True
    assert outcome.available_features.has_row_counts is False
    assert outcome.ingestion.nodes == 3
    assert adapter.closed is True
    assert factory.requests[0][2] == {"password": "s3cret"}

    record = await service.sources.get_source("src_a")
    assert record.status is CrawlStatus.CRAWLED
    assert audit.actions() == ["metadata.crawl.started", "metadata.crawl.completed"]
    assert {e.crawl_id for e in audit.events} == {outcome.crawl_id}
    assert not service.is_crawling("src_a")

    graph = await service.graph.get_graph(GraphFilter(source_ids=["src_a"]))
    assert "tbl_src_a_public_accounts" in {node.id for node in graph.nodes}


@pytest.mark.asyncio
async def test_row_capped_crawl_warns_and_skips_pruning(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    full, _ = _service(graph_db, accounts_adapter())
    await full.crawl_source("src_a")
    capped_adapter = accounts_adapter(
        **{COLUMNS: [column_row("public", "accounts", "id", "uuid", nullable=False)]}
    )
    capped_adapter.truncated_fetches = 1
    capped, _ = _service(graph_db, capped_adapter)

    outcome = await capped.crawl_source("src_a")

    assert outcome.columns == 1
    assert outcome.warnings[-1].feature == "row_limit"
    assert outcome.warnings[-1].level is WarningLevel.WARNING
    assert outcome.ingestion.pruned_nodes == 0
    graph = await capped.graph.get_graph(GraphFilter(source_ids=["src_a"]))
    assert "col_tbl_src_a_public_accounts_email" in {node.id for node in graph.nodes}


@pytest.mark.asyncio
async def test_connectivity_failure_marks_source_errored(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    audit = InMemoryAuditSink()
    adapter = FakeSqlAdapter({TABLES_TIER1: BrokenConnectionError()})
    service, _ = _service(graph_db, adapter, audit)

    with pytest.raises(BrokenConnectionError):
        await service.crawl_source("src_a")

    record = await service.sources.get_source("src_a")
    assert record.status is CrawlStatus.ERROR
    assert record.last_error == "connection refused"
    assert record.last_error_meta["category"] == "connectivity"
    assert audit.actions() == ["metadata.crawl.started", "metadata.crawl.failed"]
    assert adapter.closed is True


@pytest.mark.asyncio
async def test_unknown_source_is_rejected_before_any_work(graph_db):
    adapter = accounts_adapter()
    service, factory = _service(graph_db, adapter)

    with pytest.raises(SourceNotFoundError):
        await service.crawl_source("src_missing")
    assert factory.requests == []


@pytest.mark.asyncio
async def test_cancelled_crawl_persists_nothing(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    audit = InMemoryAuditSink()
    adapter = GatedAdapter(accounts_adapter().responses)
    service, _ = _service(graph_db, adapter, audit)

    crawl = asyncio.create_task(service.crawl_source("src_a"))
    await adapter.entered.wait()
    assert service.cancel_crawl("src_a", reason="user_request") is True
    adapter.gate.set()

    with pytest.raises(CrawlCancelledError):
        await crawl

    graph = await service.graph.get_graph(GraphFilter(source_ids=["src_a"]))
    assert [node.type for node in graph.nodes] == ["source"]
    assert audit.actions()[-1] == "metadata.crawl.cancelled"
    assert audit.events[-1].details == {"reason": "user_request"}
    record = await service.sources.get_source("src_a")
    assert record.status is CrawlStatus.ERROR
    assert record.last_error_meta == {"category": "cancelled"}
    assert service.cancel_crawl("src_a") is False


@pytest.mark.asyncio
async def test_delete_during_crawl_cancels_then_cascades(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    audit = InMemoryAuditSink()
    adapter = GatedAdapter(accounts_adapter().responses)
    service, _ = _service(graph_db, adapter, audit)

    crawl = asyncio.create_task(service.crawl_source("src_a"))
    await adapter.entered.wait()
    delete = asyncio.create_task(service.delete_source("src_a"))
    for _ in range(3):
        await asyncio.sleep(0)
    adapter.gate.set()

    with pytest.raises(CrawlCancelledError):
        await crawl
    counts = await delete

    assert counts.sources == 1
    assert (await service.graph.get_graph()).nodes == []
    assert audit.actions()[-2:] == ["metadata.crawl.cancelled", "source.deleted"]
    with pytest.raises(SourceNotFoundError):
        await service.sources.get_source("src_a")


@pytest.mark.asyncio
async def test_crawls_of_one_source_run_one_after_another(graph_db, monkeypatch):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    adapter = GatedAdapter(accounts_adapter().responses)
    service, _ = _service(graph_db, adapter)
    real_persist = service._ingestor.persist_snapshot

    async def recording_persist(*args, **kwargs):
        result = await real_persist(*args, **kwargs)
        adapter.events.append("persisted")
        return result

    monkeypatch.setattr(service._ingestor, "persist_snapshot", recording_persist)

    crawls = asyncio.gather(service.crawl_source("src_a"), service.crawl_source("src_a"))
    await adapter.entered.wait()
    for _ in range(5):
        await asyncio.sleep(0)
    assert adapter.events == ["connect"]
    assert service.is_crawling("src_a")
    adapter.gate.set()

    first, second = await crawls

    assert adapter.events == ["connect", "persisted", "connect", "persisted"]
    assert first.crawl_id != second.crawl_id
    assert (first.tables, second.tables) == (1, 1)
    assert not service.is_crawling("src_a")
    record = await service.sources.get_source("src_a")
    assert record.status is CrawlStatus.CRAWLED


@pytest.mark.asyncio
async def test_delete_unknown_source(graph_db):
    audit = InMemoryAuditSink()
    service, _ = _service(graph_db, accounts_adapter(), audit)

    with pytest.raises(SourceNotFoundError):
        await service.delete_source("src_missing")
    assert audit.events[-1].status == "failure"


@pytest.mark.asyncio
async def test_check_connection_updates_status(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")
    adapter = accounts_adapter()
    service, _ = _service(graph_db, adapter)

    check = await service.check_connection("src_a")

    assert check.status is ConnectionStatus.CONNECTED
    record = await service.sources.get_source("src_a")
    assert record.connection_status is ConnectionStatus.CONNECTED
    assert adapter.closed is True


@pytest.mark.asyncio
async def test_check_connection_failure(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb")

    class Unreachable(FakeSqlAdapter):
        async def connect(self):
            raise BrokenConnectionError()

    service, _ = _service(graph_db, Unreachable())

    check = await service.check_connection("src_a")

    assert check.status is ConnectionStatus.ERROR
    assert check.error == "connection refused"
    record = await service.sources.get_source("src_a")
    assert record.connection_status is ConnectionStatus.ERROR
    assert record.last_connection_error == "connection refused"
