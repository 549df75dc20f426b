"""Persisted property graph: node/edge upserts, filtered reads and the cascading source delete."""

import logging
from typing import Iterable, List, Optional, Tuple

import aiosqlite

from schemagraph.common.observability.metrics import crawl_metrics
from schemagraph.dal.sqlite.database import GraphDatabase, dumps, loads, utc_now
from schemagraph.schema.graph import (
    STRUCTURAL_EDGE_TYPES,
    DeleteCounts,
    GraphData,
    GraphEdge,
    GraphFilter,
    GraphNode,
    GraphStats,
    NodeType,
)

logger = logging.getLogger(__name__)

_UPSERT_NODE = """
INSERT INTO nodes (id, type, props, owner_ids, tags, sensitivity, status, created_at, updated_at)
VALUES (?, ?, json(?), json(?), json(?), ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
  type = excluded.type,
  props = excluded.props,
  owner_ids = excluded.owner_ids,
  updated_at = excluded.updated_at
"""

_UPSERT_EDGE = """
INSERT INTO edges (id, src_id, dst_id, type, props, created_at, updated_at)
VALUES (?, ?, ?, ?, json(?), ?, ?)
ON CONFLICT(src_id, dst_id, type) DO UPDATE SET
  props = excluded.props,
  updated_at = excluded.updated_at
"""

_OWNER = "json_extract(owner_ids, '$[0]')"


def _text(value) -> str:
    return getattr(value, "value", value)


async def upsert_node(
    conn: aiosqlite.Connection, node: GraphNode, now: Optional[str] = None
) -> None:
    """Insert or replace a node's props; curated tags and status survive re-ingestion."""
    now = now or utc_now()
    await conn.execute(
        _UPSERT_NODE,
        (
            node.id,
            _text(node.type),
            dumps(node.props),
            dumps(node.owner_ids),
            dumps(node.tags),
            node.sensitivity,
            node.status,
            node.created_at or now,
            now,
        ),
    )


async def upsert_edge(
    conn: aiosqlite.Connection, edge: GraphEdge, now: Optional[str] = None
) -> None:
    now = now or utc_now()
    await conn.execute(
        _UPSERT_EDGE,
        (
            edge.id,
            edge.src_id,
            edge.dst_id,
            _text(edge.type),
            dumps(edge.props),
            edge.created_at or now,
            now,
        ),
    )


async def owned_node_ids(conn: aiosqlite.Connection, source_id: str) -> List[str]:
    """Return ids of nodes whose first owner is `source_id`; source nodes are never owned."""
    cursor = await conn.execute(
        f"SELECT id FROM nodes WHERE {_OWNER} = ? AND type != ? ORDER BY id",
        (source_id, NodeType.SOURCE.value),
    )
    return [row["id"] for row in await cursor.fetchall()]


async def _stage_ids(conn: aiosqlite.Connection, name: str, ids: Iterable[str]) -> None:
    await conn.execute(f"CREATE TEMP TABLE IF NOT EXISTS {name} (id TEXT PRIMARY KEY)")
    await conn.execute(f"DELETE FROM {name}")
    await conn.executemany(
        f"INSERT OR IGNORE INTO {name} (id) VALUES (?)", [(node_id,) for node_id in ids]
    )


async def delete_nodes_with_edges(
    conn: aiosqlite.Connection, node_ids: Iterable[str]
) -> Tuple[int, int]:
    """Delete nodes and every edge touching them; returns `(edges, nodes)` removed."""
    await _stage_ids(conn, "_doomed_nodes", node_ids)
    edges = await conn.execute(
        "DELETE FROM edges WHERE src_id IN (SELECT id FROM _doomed_nodes) "
        "OR dst_id IN (SELECT id FROM _doomed_nodes)"
    )
    await conn.execute(
        "DELETE FROM provenance WHERE owner_id IN (SELECT id FROM _doomed_nodes)"
    )
    await conn.execute(
        "DELETE FROM embeddings WHERE owner_id IN (SELECT id FROM _doomed_nodes)"
    )
    await conn.execute(
        "DELETE FROM semantic_relationships "
        "WHERE source_node_id IN (SELECT id FROM _doomed_nodes) "
        "OR target_node_id IN (SELECT id FROM _doomed_nodes)"
    )
    nodes = await conn.execute("DELETE FROM nodes WHERE id IN (SELECT id FROM _doomed_nodes)")
    return edges.rowcount, nodes.rowcount


def _node_from_row(row) -> GraphNode:
    return GraphNode(
        id=row["id"],
        type=row["type"],
        props=loads(row["props"], {}),
        owner_ids=loads(row["owner_ids"], []),
        tags=loads(row["tags"], []),
        sensitivity=row["sensitivity"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _edge_from_row(row) -> GraphEdge:
    return GraphEdge(
        id=row["id"],
        src_id=row["src_id"],
        dst_id=row["dst_id"],
        type=row["type"],
        props=loads(row["props"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _placeholders(values: List[str]) -> str:
    return ", ".join("?" for _ in values)


def _as_text(values) -> List[str]:
    return [_text(value) for value in values]


class SqliteGraphStore:
    """Read and delete paths over the `nodes`/`edges` tables.

    Writes happen through `upsert_node`/`upsert_edge` on a connection owned by
    the caller's transaction, so ingestion stays all-or-nothing.
    """

    def __init__(self, database: GraphDatabase) -> None:
        self._db = database

    @property
    def database(self) -> GraphDatabase:
        return self._db

    async def get_node(self, node_id: str) -> Optional[GraphNode]:
        async with self._db.connect() as conn:
            cursor = await conn.execute("SELECT * FROM nodes WHERE id = ?", (node_id,))
            row = await cursor.fetchone()
        return _node_from_row(row) if row else None

    async def get_graph(self, graph_filter: Optional[GraphFilter] = None) -> GraphData:
        """Return nodes matching the filter and the edges whose endpoints are both returned."""
        graph_filter = graph_filter or GraphFilter()
        clauses: List[str] = []
        params: List[str] = []
        if graph_filter.source_ids:
            ids = list(graph_filter.source_ids)
            marks = _placeholders(ids)
            clauses.append(f"({_OWNER} IN ({marks}) OR id IN ({marks}))")
            params.extend(ids + ids)
        if graph_filter.node_types:
            types = _as_text(graph_filter.node_types)
            clauses.append(f"type IN ({_placeholders(types)})")
            params.extend(types)
        node_where = " AND ".join(clauses) if clauses else "1 = 1"

        async with self._db.connect() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM nodes WHERE {node_where} ORDER BY id", params
            )
            nodes = [_node_from_row(row) for row in await cursor.fetchall()]

            edges: List[GraphEdge] = []
            if graph_filter.include_edges:
                edge_sql = (
                    "SELECT * FROM edges "
                    f"WHERE src_id IN (SELECT id FROM nodes WHERE {node_where}) "
                    f"AND dst_id IN (SELECT id FROM nodes WHERE {node_where})"
                )
                edge_params = params + params
                if graph_filter.edge_types:
                    types = _as_text(graph_filter.edge_types)
                    edge_sql += f" AND type IN ({_placeholders(types)})"
                    edge_params.extend(types)
                cursor = await conn.execute(edge_sql + " ORDER BY id", edge_params)
                edges = [_edge_from_row(row) for row in await cursor.fetchall()]

        return GraphData(
            nodes=nodes,
            edges=edges,
            stats=GraphStats(node_count=len(nodes), edge_count=len(edges)),
        )

    async def delete_source_cascade(self, source_id: str) -> DeleteCounts:
        """Remove a source and everything it owns in one transaction.

        Order: embeddings, provenance and semantic relationships of owned nodes;
        edges touching owned nodes; owned nodes; the source node; changelog
        entries; the source record. The owned set is computed once up front.
        """
        counts = DeleteCounts()
        async with self._db.transaction() as conn:
            owned = await owned_node_ids(conn, source_id)
            await _stage_ids(conn, "_owned_nodes", owned + [source_id])
            in_owned = "IN (SELECT id FROM _owned_nodes)"

            cursor = await conn.execute(f"DELETE FROM embeddings WHERE owner_id {in_owned}")
            counts.embeddings = cursor.rowcount
            cursor = await conn.execute(f"DELETE FROM provenance WHERE owner_id {in_owned}")
            counts.provenance = cursor.rowcount

            cursor = await conn.execute(
                "DELETE FROM semantic_relationships "
                f"WHERE source_node_id {in_owned} OR target_node_id {in_owned}"
            )
            semantic_rows = cursor.rowcount
            structural = sorted(STRUCTURAL_EDGE_TYPES)
            cursor = await conn.execute(
                f"DELETE FROM edges WHERE type NOT IN ({_placeholders(structural)}) "
                f"AND (src_id {in_owned} OR dst_id {in_owned})",
                structural,
            )
            counts.semantic_edges = semantic_rows + cursor.rowcount

            cursor = await conn.execute(
                f"DELETE FROM edges WHERE src_id {in_owned} OR dst_id {in_owned}"
            )
            counts.edges = cursor.rowcount
            cursor = await conn.execute(
                f"DELETE FROM nodes WHERE id {in_owned} AND id != ?", (source_id,)
            )
            counts.nodes = cursor.rowcount
            cursor = await conn.execute("DELETE FROM nodes WHERE id = ?", (source_id,))
            counts.source_nodes = cursor.rowcount

            cursor = await conn.execute(
                "DELETE FROM changelog WHERE entity = 'source' AND entity_id = ?", (source_id,)
            )
            counts.changelog = cursor.rowcount
            cursor = await conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
            counts.sources = cursor.rowcount

        logger.info(
            "source_cascade_deleted",
            extra={
                "event": "source_cascade_deleted",
                "source_id": source_id,
                **counts.model_dump(),
            },
        )
        crawl_metrics.add_counter(
            "schemagraph.graph.deleted_rows_total",
            counts.total,
            description="Rows removed by cascading source deletes",
        )
        return counts
