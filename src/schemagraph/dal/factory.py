"""Adapter factory: builds a crawl adapter from a persisted source record.

Driver modules are imported lazily so a deployment only needs the drivers of
the source kinds it actually crawls.

Canonical kinds:
    - "postgres": asyncpg
    - "mysql": aiomysql
    - "mongo": pymongo
    - "duckdb": duckdb (file opened read-only)
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import UnsupportedSourceKindError
from schemagraph.dal.connection_config import (
    ConnectionConfig,
    DuckDBConnectionConfig,
    MongoConnectionConfig,
    MysqlConnectionConfig,
    PostgresConnectionConfig,
)
from schemagraph.dal.util.env import normalize_provider
from schemagraph.schema.sources import SourceKind

logger = logging.getLogger(__name__)


def _postgres_adapter():
    from schemagraph.dal.postgres import PostgresSourceAdapter

    return PostgresSourceAdapter


def _mysql_adapter():
    from schemagraph.dal.mysql import MysqlSourceAdapter

    return MysqlSourceAdapter


def _mongo_adapter():
    from schemagraph.dal.mongo import MongoSourceAdapter

    return MongoSourceAdapter


def _duckdb_adapter():
    from schemagraph.dal.duckdb import DuckDBSourceAdapter

    return DuckDBSourceAdapter


SOURCE_ADAPTER_PROVIDERS: Dict[SourceKind, Tuple[Type[ConnectionConfig], Callable[[], type]]] = {
    SourceKind.POSTGRES: (PostgresConnectionConfig, _postgres_adapter),
    SourceKind.MYSQL: (MysqlConnectionConfig, _mysql_adapter),
    SourceKind.MONGO: (MongoConnectionConfig, _mongo_adapter),
    SourceKind.DUCKDB: (DuckDBConnectionConfig, _duckdb_adapter),
}


def resolve_source_kind(kind: Any) -> SourceKind:
    """Map a kind or alias (e.g. `postgresql`, `mongodb`) onto a SourceKind."""
    if isinstance(kind, SourceKind):
        return kind
    normalized = normalize_provider(str(kind or ""))
    try:
        return SourceKind(normalized)
    except ValueError:
        raise UnsupportedSourceKindError(str(kind)) from None


def build_connection_config(
    kind: Any,
    config: Mapping[str, Any],
    secrets: Optional[Mapping[str, str]] = None,
) -> ConnectionConfig:
    """Validate stored settings for `kind` and merge resolved secrets into them."""
    source_kind = resolve_source_kind(kind)
    config_cls, _ = SOURCE_ADAPTER_PROVIDERS[source_kind]
    return config_cls(**dict(config)).with_secrets(secrets)


def create_source_adapter(
    kind: Any,
    config: Mapping[str, Any],
    settings: Optional[CrawlerSettings] = None,
    secrets: Optional[Mapping[str, str]] = None,
):
    """Build an unconnected adapter for one source.

    Raises:
        UnsupportedSourceKindError: If `kind` has no adapter.
        pydantic.ValidationError: If `config` does not match the kind's config model.
    """
    source_kind = resolve_source_kind(kind)
    connection_config = build_connection_config(source_kind, config, secrets)
    _, adapter_loader = SOURCE_ADAPTER_PROVIDERS[source_kind]
    adapter_cls = adapter_loader()
    logger.debug(
        "source_adapter_created",
        extra={"event": "source_adapter_created", "provider": source_kind.value},
    )
    return adapter_cls(connection_config, settings)
