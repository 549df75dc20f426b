"""Deterministic graph identities.

Ids are pure functions of the owning source and the entity path, so
re-ingesting the same snapshot addresses the same rows.
"""


def table_node_id(source_id: str, schema: str, table: str) -> str:
    return f"tbl_{source_id}_{schema}_{table}"


def column_node_id(table_id: str, column: str) -> str:
    return f"col_{table_id}_{column}"


def collection_node_id(source_id: str, database: str, collection: str) -> str:
    return f"coll_{source_id}_{database}_{collection}"


def field_node_id(collection_id: str, path: str) -> str:
    return f"fld_{collection_id}_{path.replace('.', '_')}"


def foreign_key_edge_id(source_column_id: str, target_column_id: str) -> str:
    return f"fk_{source_column_id}_{target_column_id}"


def edge_id(edge_type: str, src_id: str, dst_id: str) -> str:
    edge_type = getattr(edge_type, "value", edge_type)
    return f"edge_{edge_type}_{src_id}_{dst_id}"


def provenance_id(owner_id: str, kind: str) -> str:
    return f"prov_{owner_id}_{kind}"
