from typing import Any, Dict, List, Optional

import aiomysql

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.connection_config import MysqlConnectionConfig
from schemagraph.dal.mysql.queries import MYSQL_INTROSPECTION
from schemagraph.dal.source_adapter import BaseSqlAdapter
from schemagraph.schema.sources import SourceKind


class MysqlSourceAdapter(BaseSqlAdapter):
    """Crawl session over one aiomysql connection with DictCursor rows."""

    kind = SourceKind.MYSQL
    provider = "mysql"
    execution_model = "sync"
    introspection = MYSQL_INTROSPECTION

    def __init__(
        self, config: MysqlConnectionConfig, settings: Optional[CrawlerSettings] = None
    ) -> None:
        """Initialize with a validated connection config."""
        super().__init__(settings)
        self._config = config
        self._conn: Optional[aiomysql.Connection] = None

    async def _open(self) -> None:
        password = self._config.password.get_secret_value() if self._config.password else ""
        self._conn = await aiomysql.connect(
            host=self._config.host,
            port=self._config.port,
            user=self._config.user,
            password=password,
            db=self._config.database,
            connect_timeout=self._settings.connect_timeout_seconds,
            autocommit=True,
            cursorclass=aiomysql.DictCursor,
        )
        # Session-level guard in addition to the statement guard.
        async with self._conn.cursor() as cursor:
            await cursor.execute("SET SESSION TRANSACTION READ ONLY")

    async def _execute(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        async with self._conn.cursor() as cursor:
            await cursor.execute(query, params or None)
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.close()
