"""Crawl a live Postgres database.

Requires RUN_INTEGRATION_TESTS=1 and POSTGRES_HOST/PORT/DB/USER/PASSWORD pointing at a
database the crawler may read.
"""

import os

import pytest

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.connection_config import PostgresConnectionConfig
from schemagraph.dal.credentials import StaticCredentialProvider
from schemagraph.dal.sqlite import GraphDatabase, apply_migrations
from schemagraph.metadata.crawl_service import MetadataCrawlService
from schemagraph.metadata.relationships import get_foreign_keys
from schemagraph.metadata.schema_crawler import crawl_schema

pytestmark = pytest.mark.integration


def _config() -> PostgresConnectionConfig:
    if not os.getenv("POSTGRES_HOST"):
        pytest.skip("POSTGRES_HOST is not set")
    return PostgresConnectionConfig(
        host=os.environ["POSTGRES_HOST"],
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        database=os.getenv("POSTGRES_DB", "postgres"),
        user=os.getenv("POSTGRES_USER", "postgres"),
    )


@pytest.mark.asyncio
async def test_live_schema_and_foreign_keys():
    from schemagraph.dal.postgres import PostgresSourceAdapter

    config = _config().with_secrets({"password": os.getenv("POSTGRES_PASSWORD")})
    async with PostgresSourceAdapter(config, CrawlerSettings()) as adapter:
        assert await adapter.health_check() is True
        result = await crawl_schema(adapter, settings=CrawlerSettings())
        foreign_keys, _ = await get_foreign_keys(adapter)

    for table in result.data.tables:
        assert table.schema_name not in ("pg_catalog", "information_schema")
    assert isinstance(foreign_keys, list)


@pytest.mark.asyncio
async def test_live_crawl_persists_graph(tmp_path):
    config = _config()
    database = GraphDatabase(str(tmp_path / "graph.db"))
    await apply_migrations(database)
    credentials = StaticCredentialProvider()
    service = MetadataCrawlService(database, credentials=credentials)
    record = await service.sources.add_source("live", "postgres", config.model_dump())
    credentials.set(record.id, password=os.getenv("POSTGRES_PASSWORD", ""))

    outcome = await service.crawl_source(record.id)

    graph = await service.graph.get_graph()
    assert graph.stats.node_count == 1 + outcome.tables + outcome.columns
