from typing import Any, Dict, List, Optional

import asyncpg

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.connection_config import PostgresConnectionConfig
from schemagraph.dal.postgres.queries import POSTGRES_INTROSPECTION
from schemagraph.dal.source_adapter import BaseSqlAdapter
from schemagraph.schema.sources import SourceKind


class PostgresSourceAdapter(BaseSqlAdapter):
    """Crawl session over a single asyncpg connection in a read-only transaction mode."""

    kind = SourceKind.POSTGRES
    provider = "postgres"
    introspection = POSTGRES_INTROSPECTION

    def __init__(
        self, config: PostgresConnectionConfig, settings: Optional[CrawlerSettings] = None
    ) -> None:
        """Initialize with a validated connection config."""
        super().__init__(settings)
        self._config = config
        self._conn: Optional[asyncpg.Connection] = None

    async def _open(self) -> None:
        password = self._config.password.get_secret_value() if self._config.password else None
        self._conn = await asyncpg.connect(
            host=self._config.host,
            port=self._config.port,
            user=self._config.user,
            password=password,
            database=self._config.database,
            ssl=self._config.ssl or None,
            timeout=self._settings.connect_timeout_seconds,
            command_timeout=self._settings.query_timeout_seconds,
            server_settings={
                "application_name": "schemagraph_crawler",
                "default_transaction_read_only": "on",
            },
        )

    async def _execute(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        rows = await self._conn.fetch(query, *params)
        return [dict(row) for row in rows]

    async def _close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()
