"""Unit test environment helpers."""

import os

import pytest


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Clear crawler settings so defaults apply, and keep telemetry quiet."""
    for name in list(os.environ):
        if name.startswith(("CRAWL_", "SCHEMAGRAPH_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DAL_TRACE_QUERIES", "false")
    monkeypatch.setenv("CRAWL_METRICS_ENABLED", "false")
    yield


@pytest.fixture
def graph_db_path(tmp_path):
    return str(tmp_path / "graph.db")


@pytest.fixture
async def graph_db(graph_db_path):
    """A migrated graph database in a temporary file."""
    from schemagraph.dal.sqlite import GraphDatabase, apply_migrations

    database = GraphDatabase(graph_db_path)
    await apply_migrations(database)
    return database
