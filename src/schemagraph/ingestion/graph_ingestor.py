"""Persist crawl snapshots into the graph store.

One call is one `BEGIN IMMEDIATE` transaction: the source record is checked,
nodes and edges are upserted, owned rows absent from the snapshot are pruned,
statistics and warnings are recorded as provenance and a changelog entry is
written. Any failure rolls everything back.
"""

import logging
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import IngestionError, SchemaGraphError, SourceNotFoundError
from schemagraph.common.observability.context import crawl_id_var
from schemagraph.common.observability.metrics import crawl_metrics
from schemagraph.dal.sqlite.database import GraphDatabase, dumps, utc_now
from schemagraph.dal.sqlite.graph_store import (
    delete_nodes_with_edges,
    owned_node_ids,
    upsert_edge,
    upsert_node,
)
from schemagraph.dal.sqlite.source_repository import record_from_row, source_node
from schemagraph.ingestion.graph_builder import (
    GraphBatch,
    build_document_graph,
    build_relational_graph,
)
from schemagraph.ingestion.node_ids import provenance_id
from schemagraph.schema.graph import STRUCTURAL_EDGE_TYPES
from schemagraph.schema.snapshot import MongoSchemaSnapshot, SchemaSnapshot
from schemagraph.schema.sources import SourceKind
from schemagraph.schema.statistics import RowCounts, TableProfile
from schemagraph.schema.warnings import CrawlWarning

module_logger = logging.getLogger(__name__)

PROFILE_STATS_KIND = "profile_stats"
CRAWL_WARNINGS_KIND = "crawl_warnings"


class IngestionResult(BaseModel):
    source_id: str
    nodes: int = 0
    edges: int = 0
    pruned_nodes: int = 0
    pruned_edges: int = 0
    warnings: List[CrawlWarning] = Field(default_factory=list)


def build_batch(
    source_id: str,
    kind: SourceKind,
    snapshot: Union[SchemaSnapshot, MongoSchemaSnapshot],
    stats: Optional[Sequence[TableProfile]] = None,
    row_counts: Optional[RowCounts] = None,
) -> GraphBatch:
    kind = SourceKind(kind)
    if kind.is_document:
        if not isinstance(snapshot, MongoSchemaSnapshot):
            raise IngestionError(f"Source kind '{kind.value}' requires a document snapshot.")
        return build_document_graph(source_id, snapshot, stats, row_counts)
    if not isinstance(snapshot, SchemaSnapshot):
        raise IngestionError(f"Source kind '{kind.value}' requires a relational snapshot.")
    return build_relational_graph(source_id, snapshot, stats, row_counts)


class GraphIngestor:
    def __init__(
        self,
        database: GraphDatabase,
        settings: Optional[CrawlerSettings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._db = database
        self._settings = settings or CrawlerSettings.from_env()
        self._logger = logger or module_logger

    async def persist_snapshot(
        self,
        source_id: str,
        kind: SourceKind,
        snapshot: Union[SchemaSnapshot, MongoSchemaSnapshot],
        stats: Optional[Sequence[TableProfile]] = None,
        row_counts: Optional[RowCounts] = None,
        warnings: Optional[Sequence[CrawlWarning]] = None,
        prune: bool = True,
    ) -> IngestionResult:
        """Upsert a snapshot's nodes and edges for one source, atomically.

        With `prune=False` owned rows missing from the snapshot are kept.

        Raises:
            SourceNotFoundError: If the source record no longer exists.
            IngestionError: If the write failed; nothing was persisted.
        """
        batch = build_batch(source_id, kind, snapshot, stats, row_counts)
        result = IngestionResult(
            source_id=source_id,
            nodes=len(batch.nodes),
            edges=len(batch.edges),
            warnings=list(batch.warnings),
        )
        crawl_warnings = list(warnings or []) + batch.warnings

        try:
            async with self._db.transaction() as conn:
                cursor = await conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,))
                row = await cursor.fetchone()
                if row is None:
                    raise SourceNotFoundError(source_id)

                now = utc_now()
                await upsert_node(conn, source_node(record_from_row(row)), now)
                for node in batch.nodes.values():
                    await upsert_node(conn, node, now)
                for edge in batch.edges.values():
                    await upsert_edge(conn, edge, now)

                if prune and self._settings.prune_stale:
                    result.pruned_nodes, result.pruned_edges = await self._prune(
                        conn, source_id, batch
                    )
                await self._write_provenance(conn, source_id, batch, crawl_warnings, now)
                await conn.execute(
                    "INSERT INTO changelog (actor, entity, entity_id, op, patch, ts) "
                    "VALUES ('crawler', 'source', ?, 'ingest', json(?), ?)",
                    (
                        source_id,
                        dumps(
                            {
                                "crawl_id": crawl_id_var.get(),
                                "nodes": result.nodes,
                                "edges": result.edges,
                                "pruned_nodes": result.pruned_nodes,
                                "pruned_edges": result.pruned_edges,
                                "warnings": len(crawl_warnings),
                            }
                        ),
                        now,
                    ),
                )
        except SchemaGraphError:
            raise
        except Exception as exc:
            self._logger.error(
                "snapshot_persist_failed",
                extra={
                    "event": "snapshot_persist_failed",
                    "source_id": source_id,
                    "error_type": exc.__class__.__name__,
                },
            )
            raise IngestionError(f"Failed to persist snapshot for source '{source_id}'.") from exc

        self._logger.info(
            "snapshot_persisted",
            extra={"event": "snapshot_persisted", **result.model_dump(exclude={"warnings"})},
        )
        attributes = {"provider": SourceKind(kind).value}
        crawl_metrics.add_counter(
            "schemagraph.ingest.nodes_written_total", result.nodes, attributes=attributes
        )
        crawl_metrics.add_counter(
            "schemagraph.ingest.nodes_pruned_total", result.pruned_nodes, attributes=attributes
        )
        return result

    async def _prune(self, conn, source_id: str, batch: GraphBatch):
        """Delete owned nodes and structural edges the snapshot no longer contains."""
        stale_nodes = [
            node_id for node_id in await owned_node_ids(conn, source_id)
            if node_id not in batch.nodes
        ]
        pruned_edges, pruned_nodes = await delete_nodes_with_edges(conn, stale_nodes)

        structural = sorted(STRUCTURAL_EDGE_TYPES)
        marks = ", ".join("?" for _ in structural)
        cursor = await conn.execute(
            f"SELECT id FROM edges WHERE type IN ({marks}) "
            "AND (src_id = ? OR json_extract("
            "(SELECT owner_ids FROM nodes WHERE nodes.id = edges.src_id), '$[0]') = ?)",
            structural + [source_id, source_id],
        )
        stale_edges = [
            (row["id"],) for row in await cursor.fetchall() if row["id"] not in batch.edges
        ]
        if stale_edges:
            await conn.executemany("DELETE FROM edges WHERE id = ?", stale_edges)
        return pruned_nodes, pruned_edges + len(stale_edges)

    async def _write_provenance(self, conn, source_id, batch, crawl_warnings, now) -> None:
        await conn.execute(
            "DELETE FROM provenance WHERE kind = ? AND owner_id IN "
            "(SELECT id FROM nodes WHERE json_extract(owner_ids, '$[0]') = ?)",
            (PROFILE_STATS_KIND, source_id),
        )
        crawl_id = crawl_id_var.get()
        warning_meta = {"warnings": [warning.model_dump(mode="json") for warning in crawl_warnings]}
        rows = [
            (
                provenance_id(node_id, PROFILE_STATS_KIND),
                node_id,
                PROFILE_STATS_KIND,
                crawl_id,
                dumps(profile.model_dump(exclude_none=True)),
                now,
            )
            for node_id, profile in batch.profiles.items()
        ]
        rows.append(
            (
                provenance_id(source_id, CRAWL_WARNINGS_KIND),
                source_id,
                CRAWL_WARNINGS_KIND,
                crawl_id,
                dumps(warning_meta),
                now,
            )
        )
        await conn.executemany(
            """
            INSERT INTO provenance (id, owner_type, owner_id, kind, ref, meta, created_at)
            VALUES (?, 'node', ?, ?, ?, json(?), ?)
            ON CONFLICT(id) DO UPDATE SET
              ref = excluded.ref,
              meta = excluded.meta,
              created_at = excluded.created_at
            """,
            rows,
        )


async def persist_snapshot(
    database: GraphDatabase,
    source_id: str,
    kind: SourceKind,
    snapshot: Union[SchemaSnapshot, MongoSchemaSnapshot],
    stats: Optional[Sequence[TableProfile]] = None,
    row_counts: Optional[RowCounts] = None,
    warnings: Optional[Sequence[CrawlWarning]] = None,
    settings: Optional[CrawlerSettings] = None,
    prune: bool = True,
) -> IngestionResult:
    """Functional entry point over `GraphIngestor.persist_snapshot`."""
    ingestor = GraphIngestor(database, settings)
    return await ingestor.persist_snapshot(
        source_id,
        kind,
        snapshot,
        stats=stats,
        row_counts=row_counts,
        warnings=warnings,
        prune=prune,
    )
