"""Registry of crawlable sources (the `sources` table)."""

import logging
import uuid
from typing import Any, List, Mapping, Optional, Sequence

from schemagraph.common.errors import DuplicateSourceError, SourceNotFoundError
from schemagraph.dal.connection_config import ConnectionConfig
from schemagraph.dal.factory import build_connection_config, resolve_source_kind
from schemagraph.dal.sqlite.database import GraphDatabase, dumps, loads, utc_now
from schemagraph.dal.sqlite.graph_store import upsert_node
from schemagraph.schema.graph import GraphNode, NodeType
from schemagraph.schema.sources import ConnectionStatus, CrawlStatus, SourceRecord

logger = logging.getLogger(__name__)


def record_from_row(row) -> SourceRecord:
    return SourceRecord(
        id=row["id"],
        name=row["name"],
        kind=row["kind"],
        config=loads(row["config"], {}),
        description=row["description"],
        owners=loads(row["owners"], []),
        tags=loads(row["tags"], []),
        created_at=row["created_at"],
        status=row["status"],
        status_updated_at=row["status_updated_at"],
        last_crawl_at=row["last_crawl_at"],
        last_error=row["last_error"],
        last_error_meta=loads(row["last_error_meta"]),
        connection_status=row["connection_status"],
        last_connected_at=row["last_connected_at"],
        last_connection_error=row["last_connection_error"],
    )


def source_node(record: SourceRecord) -> GraphNode:
    """Return the graph node representing a registered source.

    Human owners live in props; `owner_ids` is reserved for owning sources.
    """
    return GraphNode(
        id=record.id,
        type=NodeType.SOURCE.value,
        props={
            "name": record.name,
            "kind": record.kind.value,
            "description": record.description,
            "owners": list(record.owners),
        },
        tags=list(record.tags),
    )


class SourceRepository:
    def __init__(self, database: GraphDatabase) -> None:
        self._db = database

    async def add_source(
        self,
        name: str,
        kind: Any,
        config: Any,
        *,
        description: Optional[str] = None,
        owners: Sequence[str] = (),
        tags: Sequence[str] = (),
        source_id: Optional[str] = None,
    ) -> SourceRecord:
        """Register a source and create its graph node.

        Only non-secret settings are stored. Raises DuplicateSourceError when a
        source with the same connection identity already exists.
        """
        source_kind = resolve_source_kind(kind)
        if isinstance(config, ConnectionConfig):
            connection = config
        else:
            connection = build_connection_config(source_kind, config)
        identity = connection.identity()
        now = utc_now()
        record = SourceRecord(
            id=source_id or f"src_{uuid.uuid4().hex[:12]}",
            name=name,
            kind=source_kind,
            config=connection.public_settings(),
            description=description,
            owners=list(owners),
            tags=list(tags),
            created_at=now,
            status_updated_at=now,
        )

        async with self._db.transaction() as conn:
            cursor = await conn.execute("SELECT id FROM sources WHERE identity = ?", (identity,))
            existing = await cursor.fetchone()
            if existing is not None:
                raise DuplicateSourceError(existing["id"], identity)
            await conn.execute(
                """
                INSERT INTO sources (
                  id, name, kind, identity, config, description, owners, tags,
                  created_at, status, status_updated_at, connection_status
                )
                VALUES (?, ?, ?, ?, json(?), ?, json(?), json(?), ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.name,
                    record.kind.value,
                    identity,
                    dumps(record.config),
                    record.description,
                    dumps(record.owners),
                    dumps(record.tags),
                    now,
                    record.status.value,
                    now,
                    record.connection_status.value,
                ),
            )
            await upsert_node(conn, source_node(record), now)
            await conn.execute(
                "INSERT INTO changelog (actor, entity, entity_id, op, patch, ts) "
                "VALUES ('system', 'source', ?, 'add', json(?), ?)",
                (record.id, dumps({"name": name, "kind": record.kind.value}), now),
            )

        logger.info(
            "source_registered",
            extra={
                "event": "source_registered",
                "source_id": record.id,
                "provider": record.kind.value,
            },
        )
        return record

    async def get_source(self, source_id: str) -> SourceRecord:
        async with self._db.connect() as conn:
            cursor = await conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,))
            row = await cursor.fetchone()
        if row is None:
            raise SourceNotFoundError(source_id)
        return record_from_row(row)

    async def list_sources(self) -> List[SourceRecord]:
        async with self._db.connect() as conn:
            cursor = await conn.execute("SELECT * FROM sources ORDER BY created_at, id")
            rows = await cursor.fetchall()
        return [record_from_row(row) for row in rows]

    async def update_crawl_status(
        self,
        source_id: str,
        status: CrawlStatus,
        *,
        error: Optional[str] = None,
        error_meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Move a source to a new crawl status; `crawled` clears the last error."""
        now = utc_now()
        status = CrawlStatus(status)
        assignments = ["status = ?", "status_updated_at = ?"]
        params: List[Any] = [status.value, now]
        if status is CrawlStatus.CRAWLED:
            assignments += ["last_crawl_at = ?", "last_error = NULL", "last_error_meta = NULL"]
            params.append(now)
        elif status is CrawlStatus.ERROR:
            assignments += ["last_error = ?", "last_error_meta = json(?)"]
            params += [error, dumps(dict(error_meta) if error_meta else None)]
        await self._update(source_id, assignments, params)

    async def update_connection_status(
        self, source_id: str, status: ConnectionStatus, *, error: Optional[str] = None
    ) -> None:
        now = utc_now()
        status = ConnectionStatus(status)
        assignments = ["connection_status = ?"]
        params: List[Any] = [status.value]
        if status is ConnectionStatus.CONNECTED:
            assignments += ["last_connected_at = ?", "last_connection_error = NULL"]
            params.append(now)
        elif status is ConnectionStatus.ERROR:
            assignments.append("last_connection_error = ?")
            params.append(error)
        await self._update(source_id, assignments, params)

    async def _update(self, source_id: str, assignments: List[str], params: List[Any]) -> None:
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE sources SET {', '.join(assignments)} WHERE id = ?",
                params + [source_id],
            )
            if cursor.rowcount == 0:
                raise SourceNotFoundError(source_id)
