"""Idempotent schema for the graph database."""

import logging

from schemagraph.dal.sqlite.database import GraphDatabase, utc_now

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS schema_migrations (
      version INTEGER PRIMARY KEY,
      applied_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS nodes (
      id TEXT PRIMARY KEY,
      type TEXT NOT NULL,
      props JSON NOT NULL,
      owner_ids JSON,
      tags JSON,
      sensitivity TEXT,
      status TEXT,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_nodes_type ON nodes(type)",
    "CREATE INDEX IF NOT EXISTS idx_nodes_owner ON nodes(json_extract(owner_ids, '$[0]'))",
    """
    CREATE TABLE IF NOT EXISTS edges (
      id TEXT PRIMARY KEY,
      src_id TEXT NOT NULL,
      dst_id TEXT NOT NULL,
      type TEXT NOT NULL,
      props JSON,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL,
      UNIQUE (src_id, dst_id, type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_edges_src_type ON edges(src_id, type)",
    "CREATE INDEX IF NOT EXISTS idx_edges_dst_type ON edges(dst_id, type)",
    """
    CREATE TABLE IF NOT EXISTS sources (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      kind TEXT NOT NULL,
      identity TEXT NOT NULL UNIQUE,
      config JSON NOT NULL,
      description TEXT,
      owners JSON,
      tags JSON,
      created_at TEXT NOT NULL,
      status TEXT NOT NULL DEFAULT 'not_crawled',
      status_updated_at TEXT,
      last_crawl_at TEXT,
      last_error TEXT,
      last_error_meta JSON,
      connection_status TEXT NOT NULL DEFAULT 'unknown',
      last_connected_at TEXT,
      last_connection_error TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS embeddings (
      id TEXT PRIMARY KEY,
      owner_type TEXT NOT NULL,
      owner_id TEXT NOT NULL,
      vec BLOB NOT NULL,
      dim INTEGER NOT NULL,
      model TEXT NOT NULL,
      updated_at TEXT NOT NULL,
      UNIQUE (owner_type, owner_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_embeddings_owner ON embeddings(owner_id)",
    """
    CREATE TABLE IF NOT EXISTS provenance (
      id TEXT PRIMARY KEY,
      owner_type TEXT NOT NULL,
      owner_id TEXT NOT NULL,
      kind TEXT NOT NULL,
      ref TEXT,
      meta JSON,
      created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_provenance_owner ON provenance(owner_id, kind)",
    """
    CREATE TABLE IF NOT EXISTS semantic_relationships (
      id TEXT PRIMARY KEY,
      source_node_id TEXT NOT NULL,
      target_node_id TEXT NOT NULL,
      relationship_type TEXT NOT NULL DEFAULT 'semantic_link',
      confidence_score REAL NOT NULL DEFAULT 0.0,
      metadata JSON,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL,
      UNIQUE (source_node_id, target_node_id, relationship_type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_semantic_relationships_source "
    "ON semantic_relationships(source_node_id)",
    "CREATE INDEX IF NOT EXISTS idx_semantic_relationships_target "
    "ON semantic_relationships(target_node_id)",
    """
    CREATE TABLE IF NOT EXISTS changelog (
      seq INTEGER PRIMARY KEY AUTOINCREMENT,
      actor TEXT NOT NULL,
      entity TEXT NOT NULL,
      entity_id TEXT,
      op TEXT NOT NULL,
      patch JSON,
      ts TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_changelog_entity ON changelog(entity, entity_id)",
)


async def apply_migrations(database: GraphDatabase) -> int:
    """Create missing tables and indexes; safe to run on every start.

    Returns:
        The schema version recorded in `schema_migrations`.
    """
    async with database.connect() as conn:
        await conn.execute("PRAGMA journal_mode = WAL")
    async with database.transaction() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
        await conn.execute(
            "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION, utc_now()),
        )
        cursor = await conn.execute("SELECT MAX(version) AS version FROM schema_migrations")
        row = await cursor.fetchone()
    version = int(row["version"])
    logger.info(
        "graph_schema_ready",
        extra={"event": "graph_schema_ready", "db_path": database.db_path, "version": version},
    )
    return version
