"""Source registry tests."""

import pytest

from schemagraph.common.errors import (
    DuplicateSourceError,
    SourceNotFoundError,
    UnsupportedSourceKindError,
)
from schemagraph.dal.connection_config import PostgresConnectionConfig
from schemagraph.dal.sqlite import SourceRepository, SqliteGraphStore
from schemagraph.schema.sources import ConnectionStatus, CrawlStatus, SourceKind


@pytest.mark.asyncio
async def test_add_source_persists_public_settings_and_node(graph_db):
    repository = SourceRepository(graph_db)
    config = PostgresConnectionConfig(
        host="DB.internal", database="sales", user="crawler", password="hunter2"
    )

    record = await repository.add_source(
        "sales", "postgresql", config, owners=["analytics"], tags=["prod"]
    )

    assert record.id.startswith("src_")
    assert record.kind is SourceKind.POSTGRES
    assert "password" not in record.config
    stored = await repository.get_source(record.id)
    assert stored.config == {
        "host": "DB.internal",
        "port": 5432,
        "database": "sales",
        "user": "crawler",
        "ssl": False,
    }
    assert stored.status is CrawlStatus.NOT_CRAWLED
    assert stored.connection_status is ConnectionStatus.UNKNOWN
    node = await SqliteGraphStore(graph_db).get_node(record.id)
    assert node.type == "source"
    assert node.owner_ids == []
    assert node.props["owners"] == ["analytics"]
    assert node.tags == ["prod"]


@pytest.mark.asyncio
async def test_duplicate_connection_identity_is_rejected(graph_db):
    repository = SourceRepository(graph_db)
    first = await repository.add_source(
        "sales", "postgres", {"host": "db", "database": "sales", "user": "a"}
    )

    with pytest.raises(DuplicateSourceError) as excinfo:
        await repository.add_source(
            "sales again", "postgres", {"host": "DB", "database": "sales", "user": "b"}
        )

    assert excinfo.value.existing_id == first.id
    assert len(await repository.list_sources()) == 1


@pytest.mark.asyncio
async def test_unknown_kind_is_rejected(graph_db):
    with pytest.raises(UnsupportedSourceKindError):
        await SourceRepository(graph_db).add_source("x", "oracle", {})


@pytest.mark.asyncio
async def test_crawl_status_transitions(graph_db):
    repository = SourceRepository(graph_db)
    record = await repository.add_source("lake", "duckdb", {"file_path": "/data/lake.duckdb"})

    await repository.update_crawl_status(
        record.id, CrawlStatus.ERROR, error="boom", error_meta={"category": "auth"}
    )
    failed = await repository.get_source(record.id)
    assert failed.status is CrawlStatus.ERROR
    assert failed.last_error == "boom"
    assert failed.last_error_meta == {"category": "auth"}

    await repository.update_crawl_status(record.id, CrawlStatus.CRAWLED)
    crawled = await repository.get_source(record.id)
    assert crawled.status is CrawlStatus.CRAWLED
    assert crawled.last_crawl_at is not None
    assert crawled.last_error is None
    assert crawled.last_error_meta is None


@pytest.mark.asyncio
async def test_connection_status_transitions(graph_db):
    repository = SourceRepository(graph_db)
    record = await repository.add_source("lake", "duckdb", {"file_path": "/data/lake.duckdb"})

    await repository.update_connection_status(
        record.id, ConnectionStatus.ERROR, error="unreachable"
    )
    assert (await repository.get_source(record.id)).last_connection_error == "unreachable"

    await repository.update_connection_status(record.id, ConnectionStatus.CONNECTED)
    connected = await repository.get_source(record.id)
    assert connected.connection_status is ConnectionStatus.CONNECTED
    assert connected.last_connected_at is not None
    assert connected.last_connection_error is None


@pytest.mark.asyncio
async def test_missing_source(graph_db):
    repository = SourceRepository(graph_db)

    with pytest.raises(SourceNotFoundError):
        await repository.get_source("src_missing")
    with pytest.raises(SourceNotFoundError):
        await repository.update_crawl_status("src_missing", CrawlStatus.CRAWLING)
