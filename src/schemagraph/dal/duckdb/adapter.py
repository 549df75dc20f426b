import asyncio
from typing import Any, Dict, List, Optional

import duckdb

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.connection_config import DuckDBConnectionConfig
from schemagraph.dal.duckdb.queries import DUCKDB_INTROSPECTION
from schemagraph.dal.source_adapter import BaseSqlAdapter
from schemagraph.schema.sources import SourceKind


class DuckDBSourceAdapter(BaseSqlAdapter):
    """Crawl session over a DuckDB file opened read-only; sync calls run in a worker thread."""

    kind = SourceKind.DUCKDB
    provider = "duckdb"
    execution_model = "sync"
    introspection = DUCKDB_INTROSPECTION

    def __init__(
        self, config: DuckDBConnectionConfig, settings: Optional[CrawlerSettings] = None
    ) -> None:
        """Initialize with a validated connection config."""
        super().__init__(settings)
        self._config = config
        self._conn: Optional[duckdb.DuckDBPyConnection] = None

    async def _open(self) -> None:
        self._conn = await asyncio.to_thread(
            duckdb.connect, self._config.file_path, read_only=True
        )

    async def _execute(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        conn = self._conn

        def _run():
            cursor = conn.execute(query, list(params))
            cols = [desc[0] for desc in cursor.description] if cursor.description else []
            return [dict(zip(cols, row)) for row in cursor.fetchall()]

        return await asyncio.to_thread(_run)

    async def _cancel(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._conn.interrupt)

    async def _close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)
