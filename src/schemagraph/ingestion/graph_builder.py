"""Translate crawl snapshots into graph nodes and edges (no I/O)."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from schemagraph.ingestion.node_ids import (
    collection_node_id,
    column_node_id,
    edge_id,
    field_node_id,
    foreign_key_edge_id,
    table_node_id,
)
from schemagraph.schema.graph import EdgeType, GraphEdge, GraphNode, NodeType
from schemagraph.schema.snapshot import MongoSchemaSnapshot, SchemaSnapshot
from schemagraph.schema.statistics import ColumnProfile, RowCounts, TableProfile, index_profiles
from schemagraph.schema.warnings import CrawlWarning, WarningLevel


@dataclass
class GraphBatch:
    """Everything one snapshot contributes to the graph, plus resolution warnings."""

    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: Dict[str, GraphEdge] = field(default_factory=dict)
    profiles: Dict[str, ColumnProfile] = field(default_factory=dict)
    warnings: List[CrawlWarning] = field(default_factory=list)

    def add_node(self, node_id: str, node_type: NodeType, props: Dict[str, Any], owner: str):
        self.nodes[node_id] = GraphNode(
            id=node_id, type=node_type.value, props=props, owner_ids=[owner]
        )

    def add_edge(
        self,
        src_id: str,
        dst_id: str,
        edge_type: EdgeType,
        props: Optional[Dict[str, Any]] = None,
        identity: Optional[str] = None,
    ) -> None:
        key = identity or edge_id(edge_type, src_id, dst_id)
        self.edges[key] = GraphEdge(
            id=key, src_id=src_id, dst_id=dst_id, type=edge_type.value, props=props
        )


def _stat_props(profile: Optional[ColumnProfile]) -> Dict[str, Any]:
    if profile is None:
        return {}
    props: Dict[str, Any] = {
        "null_percent": (
            round(profile.null_fraction * 100) if profile.null_fraction is not None else None
        ),
        "distinct_count": profile.distinct_count,
        "distinct_fraction": profile.distinct_fraction,
        "min": profile.min,
        "max": profile.max,
        "sample_count": profile.sample_count,
    }
    return {key: value for key, value in props.items() if value is not None}


def build_relational_graph(
    source_id: str,
    snapshot: SchemaSnapshot,
    stats: Optional[Sequence[TableProfile]] = None,
    row_counts: Optional[RowCounts] = None,
) -> GraphBatch:
    batch = GraphBatch()
    profile_index = index_profiles(list(stats or []))
    row_counts = row_counts or {}
    column_ids: Dict[tuple, str] = {}

    for table in snapshot.tables:
        table_id = table_node_id(source_id, table.schema_name, table.name)
        batch.add_node(
            table_id,
            NodeType.TABLE,
            {
                "source_id": source_id,
                "schema": table.schema_name,
                "name": table.name,
                "table_type": table.kind.value,
                "comment": table.comment,
                "row_count": row_counts.get(table.key),
            },
            source_id,
        )
        batch.add_edge(source_id, table_id, EdgeType.CONTAINS)

        for column in table.columns:
            column_id = column_node_id(table_id, column.name)
            column_ids[(table.key, column.name)] = column_id
            profile = profile_index.get((table.key, column.name))
            if profile is not None:
                batch.profiles[column_id] = profile
            batch.add_node(
                column_id,
                NodeType.COLUMN,
                {
                    "source_id": source_id,
                    "table_id": table_id,
                    "table_name": table.name,
                    "name": column.name,
                    "data_type": column.data_type,
                    "nullable": column.nullable,
                    "default_value": column.default_value,
                    "comment": column.comment,
                    **_stat_props(profile),
                },
                source_id,
            )
            batch.add_edge(table_id, column_id, EdgeType.HAS_COLUMN)

    for fk in snapshot.foreign_keys or []:
        src = column_ids.get((fk.source_key, fk.source_column))
        dst = column_ids.get((fk.target_key, fk.target_column))
        if src is None or dst is None:
            missing = (
                f"{fk.source_key}.{fk.source_column}"
                if src is None
                else f"{fk.target_key}.{fk.target_column}"
            )
            batch.warnings.append(
                CrawlWarning(
                    level=WarningLevel.WARNING,
                    feature="foreign_key_resolution",
                    message=(
                        f"Foreign key {fk.constraint_name} skipped: {missing} "
                        "is not in the crawled schema."
                    ),
                    suggestion="Grant access to the referenced schema and re-crawl.",
                )
            )
            continue
        props = {
            "constraint_name": fk.constraint_name,
            "source_schema": fk.source_schema,
            "source_table": fk.source_table,
            "source_column": fk.source_column,
            "target_schema": fk.target_schema,
            "target_table": fk.target_table,
            "target_column": fk.target_column,
            "update_rule": fk.update_rule,
            "delete_rule": fk.delete_rule,
        }
        batch.add_edge(
            src,
            dst,
            EdgeType.FOREIGN_KEY,
            {key: value for key, value in props.items() if value is not None},
            identity=foreign_key_edge_id(src, dst),
        )
    return batch


def build_document_graph(
    source_id: str,
    snapshot: MongoSchemaSnapshot,
    stats: Optional[Sequence[TableProfile]] = None,
    row_counts: Optional[RowCounts] = None,
) -> GraphBatch:
    batch = GraphBatch()
    profile_index = index_profiles(list(stats or []))
    row_counts = row_counts or {}

    for collection in snapshot.collections:
        collection_id = collection_node_id(source_id, collection.database, collection.name)
        document_count = collection.document_count
        if document_count is None:
            document_count = row_counts.get(collection.key)
        batch.add_node(
            collection_id,
            NodeType.COLLECTION,
            {
                "source_id": source_id,
                "database": collection.database,
                "name": collection.name,
                "sample_size": collection.sample_size,
                "document_count": document_count,
            },
            source_id,
        )
        batch.add_edge(source_id, collection_id, EdgeType.CONTAINS)

        field_ids = {
            item.path: field_node_id(collection_id, item.path) for item in collection.fields
        }
        for item in collection.fields:
            field_id = field_ids[item.path]
            profile = profile_index.get((collection.key, item.path))
            if profile is not None:
                batch.profiles[field_id] = profile
            batch.add_node(
                field_id,
                NodeType.FIELD,
                {
                    "source_id": source_id,
                    "collection_id": collection_id,
                    "collection_name": collection.name,
                    "path": item.path,
                    "types": list(item.types),
                    "nullable": item.nullable,
                    "is_array": item.is_array,
                    **_stat_props(profile),
                },
                source_id,
            )
            batch.add_edge(collection_id, field_id, EdgeType.HAS_FIELD)
            parent_id = field_ids.get(item.parent_path) if item.parent_path else None
            if parent_id is not None:
                batch.add_edge(field_id, parent_id, EdgeType.BELONGS_TO)
    return batch
