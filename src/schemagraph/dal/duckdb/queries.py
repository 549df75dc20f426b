"""DuckDB catalog queries, richest tier first. Parameters use `?`."""

from schemagraph.dal.introspection import (
    ProbeSpec,
    ProfileSpec,
    QueryTier,
    RelationalIntrospection,
    RowCountStrategy,
)
from schemagraph.dal.util.identifiers import quote_ident

TABLES_WITH_COMMENTS = """
SELECT
  schema_name AS table_schema,
  table_name,
  'BASE TABLE' AS table_type,
  comment AS table_comment
FROM duckdb_tables()
WHERE NOT internal AND NOT temporary AND database_name = current_database()
UNION ALL
SELECT
  schema_name AS table_schema,
  view_name AS table_name,
  'VIEW' AS table_type,
  comment AS table_comment
FROM duckdb_views()
WHERE NOT internal AND NOT temporary AND database_name = current_database()
ORDER BY table_schema, table_name
"""

TABLES_PLAIN = """
SELECT
  table_schema,
  table_name,
  table_type,
  NULL AS table_comment
FROM information_schema.tables
WHERE table_schema NOT IN ('information_schema', 'pg_catalog')
  AND table_catalog = current_database()
ORDER BY table_schema, table_name
"""

COLUMNS = """
SELECT
  table_schema,
  table_name,
  column_name,
  data_type,
  is_nullable,
  column_default,
  NULL AS column_comment
FROM information_schema.columns
WHERE table_schema NOT IN ('information_schema', 'pg_catalog')
  AND table_catalog = current_database()
ORDER BY table_schema, table_name, ordinal_position
"""

FOREIGN_KEYS_INFORMATION_SCHEMA = """
SELECT
  tc.constraint_name,
  kcu.table_schema,
  kcu.table_name,
  kcu.column_name,
  ccu.table_schema AS foreign_table_schema,
  ccu.table_name AS foreign_table_name,
  ccu.column_name AS foreign_column_name
FROM information_schema.table_constraints AS tc
JOIN information_schema.key_column_usage AS kcu
  ON tc.constraint_name = kcu.constraint_name
  AND tc.table_schema = kcu.table_schema
JOIN information_schema.constraint_column_usage AS ccu
  ON ccu.constraint_name = tc.constraint_name
  AND ccu.table_schema = tc.table_schema
WHERE tc.constraint_type = 'FOREIGN KEY'
  AND tc.table_schema NOT IN ('information_schema', 'pg_catalog')
ORDER BY kcu.table_schema, kcu.table_name, kcu.ordinal_position
"""

# Parallel UNNEST zips the source and referenced column lists.
FOREIGN_KEYS_CONSTRAINTS = """
SELECT
  table_name || '_' || CAST(constraint_index AS VARCHAR) || '_fkey' AS constraint_name,
  schema_name AS table_schema,
  table_name,
  UNNEST(constraint_column_names) AS column_name,
  schema_name AS foreign_table_schema,
  referenced_table AS foreign_table_name,
  UNNEST(referenced_column_names) AS foreign_column_name
FROM duckdb_constraints()
WHERE constraint_type = 'FOREIGN KEY'
  AND database_name = current_database()
"""


def _count_star(schema: str, name: str):
    return f"SELECT COUNT(*) AS row_count FROM {quote_ident(schema)}.{quote_ident(name)}", ()


def _estimated_size(schema: str, name: str):
    return (
        "SELECT estimated_size AS row_count FROM duckdb_tables() "
        "WHERE schema_name = ? AND table_name = ?",
        (schema, name),
    )


def sample_column_stats(schema: str, table: str, column: str, limit: int):
    """Build the per-column sampling statement."""
    col = quote_ident(column)
    source = f"{quote_ident(schema)}.{quote_ident(table)}"
    return (
        f"""
        SELECT
          COUNT(*) AS sampled_rows,
          SUM(CASE WHEN {col} IS NULL THEN 1 ELSE 0 END) AS null_count,
          COUNT(DISTINCT {col}) AS distinct_count,
          CAST(MIN({col}) AS VARCHAR) AS min_value,
          CAST(MAX({col}) AS VARCHAR) AS max_value
        FROM (SELECT {col} FROM {source} LIMIT ?) AS sampled
        """,
        (int(limit),),
    )


DUCKDB_INTROSPECTION = RelationalIntrospection(
    tables=ProbeSpec(
        capability="tables",
        tiers=(
            QueryTier(
                feature="duckdb_tables",
                sql=TABLES_WITH_COMMENTS,
                message="Cannot read duckdb_tables(). Table comments unavailable.",
                provides_comments=True,
            ),
            QueryTier(
                feature="information_schema.tables",
                sql=TABLES_PLAIN,
                message="Cannot read information_schema.tables.",
            ),
        ),
        unavailable_message="No table listing access available.",
        unavailable_suggestion="Check that the database file is readable.",
    ),
    column_query=COLUMNS,
    foreign_keys=ProbeSpec(
        capability="foreign_keys",
        tiers=(
            QueryTier(
                feature="foreign_keys_tier1",
                sql=FOREIGN_KEYS_CONSTRAINTS,
                message="Cannot access duckdb_constraints(). Trying fallback.",
            ),
            QueryTier(
                feature="foreign_keys_tier2",
                sql=FOREIGN_KEYS_INFORMATION_SCHEMA,
                message="Cannot access information_schema constraint metadata.",
            ),
        ),
        unavailable_message="No FK discovery access available.",
        unavailable_suggestion="Foreign keys must be manually documented.",
        accumulate=True,
    ),
    row_counts=(
        RowCountStrategy(
            feature="count_star",
            message="Cannot count table rows. Falling back to estimated sizes.",
            suggestion="Check that the database file is readable.",
            build=_count_star,
        ),
        RowCountStrategy(
            feature="duckdb_tables.estimated_size",
            message="Cannot read estimated table sizes. Row counts unavailable.",
            suggestion=None,
            build=_estimated_size,
        ),
    ),
    profile=ProfileSpec(
        feature="column_sampling",
        message="Cannot sample table rows. Column statistics unavailable.",
        sample_query=sample_column_stats,
    ),
)
