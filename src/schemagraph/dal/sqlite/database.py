"""Per-operation aiosqlite connections to the graph database file."""

import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite

from schemagraph.common.config.settings import CrawlerSettings


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def dumps(value: Any) -> Optional[str]:
    """Serialize a JSON column value; driver-native values (dates, ObjectIds) become strings."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, default=str)


def loads(value: Optional[str], default: Any = None) -> Any:
    if value is None or value == "":
        return default
    return json.loads(value)


class GraphDatabase:
    """Opens a fresh connection per operation; writers use `BEGIN IMMEDIATE` transactions."""

    def __init__(self, db_path: str, busy_timeout_seconds: int = 5) -> None:
        """Initialize with the SQLite file path."""
        if not db_path:
            raise ValueError("Graph database path must be set (SCHEMAGRAPH_DB_PATH).")
        self.db_path = db_path
        self.busy_timeout_seconds = busy_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Optional[CrawlerSettings] = None) -> "GraphDatabase":
        settings = settings or CrawlerSettings.from_env()
        return cls(settings.graph_db_path, settings.busy_timeout_seconds)

    @asynccontextmanager
    async def connect(self):
        """Yield an autocommit connection with dict-like rows."""
        conn = await aiosqlite.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            await conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_seconds * 1000)}")
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection inside `BEGIN IMMEDIATE`; commits on success, rolls back on error."""
        async with self.connect() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")
