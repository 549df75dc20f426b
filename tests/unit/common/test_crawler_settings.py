"""Crawler settings loaded from the environment."""

import pytest

from schemagraph.common.config.env import get_env_bool, get_env_list
from schemagraph.common.config.settings import CrawlerSettings


def test_defaults_when_environment_is_empty():
    settings = CrawlerSettings.from_env()

    assert settings == CrawlerSettings()
    assert settings.graph_db_path == "schemagraph.db"
    assert settings.query_timeout_seconds == 30
    assert settings.prune_stale is True
    assert settings.excluded_schemas == ()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SCHEMAGRAPH_DB_PATH", "/var/lib/graph.db")
    monkeypatch.setenv("CRAWL_QUERY_TIMEOUT_SECS", "5")
    monkeypatch.setenv("CRAWL_MAX_ROWS", "10")
    monkeypatch.setenv("CRAWL_PRUNE_STALE", "off")
    monkeypatch.setenv("CRAWL_EXCLUDED_SCHEMAS", "audit, staging,,")

    settings = CrawlerSettings.from_env()

    assert settings.graph_db_path == "/var/lib/graph.db"
    assert settings.query_timeout_seconds == 5
    assert settings.max_rows == 10
    assert settings.prune_stale is False
    assert settings.excluded_schemas == ("audit", "staging")


def test_malformed_values_are_rejected(monkeypatch):
    monkeypatch.setenv("CRAWL_QUERY_TIMEOUT_SECS", "soon")
    with pytest.raises(ValueError, match="CRAWL_QUERY_TIMEOUT_SECS"):
        CrawlerSettings.from_env()


def test_non_positive_bounds_are_rejected(monkeypatch):
    monkeypatch.setenv("CRAWL_MONGO_SAMPLE_SIZE", "0")
    with pytest.raises(ValueError, match="Sample sizes"):
        CrawlerSettings.from_env()
    with pytest.raises(ValueError):
        CrawlerSettings(query_timeout_seconds=0)


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("FLAG", "Yes")
    monkeypatch.setenv("ITEMS", "a;b")
    assert get_env_bool("FLAG") is True
    assert get_env_bool("MISSING_FLAG", False) is False
    assert get_env_list("ITEMS", separator=";") == ["a", "b"]

    monkeypatch.setenv("FLAG", "perhaps")
    with pytest.raises(ValueError):
        get_env_bool("FLAG")
    with pytest.raises(KeyError):
        get_env_bool("MISSING_FLAG", required=True)
