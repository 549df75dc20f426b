"""Postgres catalog queries, richest tier first."""

from schemagraph.dal.introspection import (
    ProbeSpec,
    ProfileSpec,
    QueryTier,
    RelationalIntrospection,
    RowCountStrategy,
)

_SYSTEM_SCHEMAS = "('pg_catalog', 'information_schema', 'pg_toast')"

TABLES_WITH_COMMENTS = f"""
SELECT
  n.nspname AS table_schema,
  c.relname AS table_name,
  CASE WHEN c.relkind IN ('r', 'p') THEN 'BASE TABLE' ELSE 'VIEW' END AS table_type,
  obj_description(c.oid, 'pg_class') AS table_comment
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('r', 'p', 'v', 'm')
  AND n.nspname NOT IN {_SYSTEM_SCHEMAS}
  AND n.nspname NOT LIKE 'pg_temp_%'
ORDER BY table_schema, table_name
"""

TABLES_PLAIN = f"""
SELECT
  table_schema,
  table_name,
  table_type,
  NULL AS table_comment
FROM information_schema.tables
WHERE table_schema NOT IN {_SYSTEM_SCHEMAS}
  AND table_type IN ('BASE TABLE', 'VIEW')
ORDER BY table_schema, table_name
"""

COLUMNS = f"""
SELECT
  table_schema,
  table_name,
  column_name,
  data_type,
  is_nullable,
  column_default,
  col_description(format('%I.%I', table_schema, table_name)::regclass::oid, ordinal_position)
    AS column_comment
FROM information_schema.columns
WHERE table_schema NOT IN {_SYSTEM_SCHEMAS}
ORDER BY table_schema, table_name, ordinal_position
"""

FOREIGN_KEYS_FULL = f"""
SELECT
  tc.constraint_name,
  kcu.table_schema,
  kcu.table_name,
  kcu.column_name,
  ccu.table_schema AS foreign_table_schema,
  ccu.table_name AS foreign_table_name,
  ccu.column_name AS foreign_column_name,
  rc.update_rule,
  rc.delete_rule
FROM information_schema.table_constraints AS tc
JOIN information_schema.key_column_usage AS kcu
  ON tc.constraint_name = kcu.constraint_name
  AND tc.table_schema = kcu.table_schema
JOIN information_schema.constraint_column_usage AS ccu
  ON ccu.constraint_name = tc.constraint_name
  AND ccu.table_schema = tc.table_schema
LEFT JOIN information_schema.referential_constraints AS rc
  ON rc.constraint_name = tc.constraint_name
  AND rc.constraint_schema = tc.table_schema
WHERE tc.constraint_type = 'FOREIGN KEY'
  AND tc.table_schema NOT IN {_SYSTEM_SCHEMAS}
ORDER BY kcu.table_schema, kcu.table_name, kcu.ordinal_position
"""

FOREIGN_KEYS_KEY_USAGE = f"""
SELECT
  kcu.constraint_name,
  kcu.table_schema,
  kcu.table_name,
  kcu.column_name,
  ccu.table_schema AS foreign_table_schema,
  ccu.table_name AS foreign_table_name,
  ccu.column_name AS foreign_column_name
FROM information_schema.key_column_usage AS kcu
JOIN information_schema.constraint_column_usage AS ccu
  ON ccu.constraint_name = kcu.constraint_name
  AND ccu.table_schema = kcu.table_schema
WHERE kcu.table_schema NOT IN {_SYSTEM_SCHEMAS}
  AND kcu.position_in_unique_constraint IS NOT NULL
ORDER BY kcu.table_schema, kcu.table_name, kcu.ordinal_position
"""

COLUMN_STATISTICS = f"""
SELECT
  schemaname AS table_schema,
  tablename AS table_name,
  attname AS column_name,
  null_frac,
  n_distinct
FROM pg_stats
WHERE schemaname NOT IN {_SYSTEM_SCHEMAS}
ORDER BY table_schema, table_name, column_name
"""


def _live_tuples(schema: str, name: str):
    return (
        "SELECT n_live_tup AS row_count FROM pg_stat_user_tables "
        "WHERE schemaname = $1 AND relname = $2",
        (schema, name),
    )


def _reltuples(schema: str, name: str):
    return (
        "SELECT reltuples::bigint AS row_count FROM pg_class "
        "WHERE relname = $1 AND relnamespace = $2::regnamespace",
        (name, schema),
    )


POSTGRES_INTROSPECTION = RelationalIntrospection(
    tables=ProbeSpec(
        capability="tables",
        tiers=(
            QueryTier(
                feature="pg_catalog",
                sql=TABLES_WITH_COMMENTS,
                message="Cannot read pg_catalog. Table comments unavailable.",
                suggestion="Grant USAGE on schema pg_catalog and SELECT on pg_class.",
                provides_comments=True,
            ),
            QueryTier(
                feature="information_schema.tables",
                sql=TABLES_PLAIN,
                message="Cannot read information_schema.tables.",
                suggestion="Grant SELECT on information_schema.tables.",
            ),
        ),
        unavailable_message="No table listing access available.",
        unavailable_suggestion="Grant SELECT on pg_catalog.pg_class or information_schema.tables.",
    ),
    column_query=COLUMNS,
    foreign_keys=ProbeSpec(
        capability="foreign_keys",
        tiers=(
            QueryTier(
                feature="foreign_keys_tier1",
                sql=FOREIGN_KEYS_FULL,
                message="Cannot access full FK metadata. Trying fallback.",
                suggestion=(
                    "Grant SELECT on information_schema.table_constraints "
                    "for complete FK discovery."
                ),
            ),
            QueryTier(
                feature="foreign_keys_tier2",
                sql=FOREIGN_KEYS_KEY_USAGE,
                message="Cannot access key column usage metadata.",
                suggestion="Grant SELECT on information_schema.key_column_usage.",
            ),
        ),
        unavailable_message="No FK discovery access available.",
        unavailable_suggestion=(
            "Foreign keys must be manually documented or grant SELECT on information_schema."
        ),
    ),
    row_counts=(
        RowCountStrategy(
            feature="pg_stat_user_tables",
            message="Cannot access pg_stat_user_tables. Falling back to catalog estimates.",
            suggestion="Grant SELECT on pg_stat_user_tables for accurate counts.",
            build=_live_tuples,
        ),
        RowCountStrategy(
            feature="pg_class.reltuples",
            message="Cannot access pg_class row estimates. Row counts unavailable.",
            suggestion="Grant SELECT on pg_catalog.pg_class.",
            build=_reltuples,
        ),
    ),
    profile=ProfileSpec(
        feature="pg_stats",
        message="Cannot access pg_stats view. Column statistics unavailable.",
        suggestion="Grant SELECT on pg_stats or run ANALYZE on tables.",
        bulk_query=COLUMN_STATISTICS,
    ),
)
