"""Graph database migrator tests."""

import pytest

from schemagraph.dal.sqlite import GraphDatabase, apply_migrations
from schemagraph.dal.sqlite.migrations import SCHEMA_VERSION


@pytest.mark.asyncio
async def test_migrations_are_idempotent(graph_db_path):
    database = GraphDatabase(graph_db_path)

    assert await apply_migrations(database) == SCHEMA_VERSION
    assert await apply_migrations(database) == SCHEMA_VERSION

    async with database.connect() as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row["name"] for row in await cursor.fetchall()}
    assert {
        "nodes",
        "edges",
        "sources",
        "embeddings",
        "provenance",
        "semantic_relationships",
        "changelog",
        "schema_migrations",
    } <= tables


def test_database_path_is_required():
    with pytest.raises(ValueError):
        GraphDatabase("")
