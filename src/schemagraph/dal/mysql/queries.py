"""MySQL information_schema queries, richest tier first.

Statements that take parameters use the `%s` paramstyle of aiomysql.
"""

from schemagraph.dal.introspection import (
    ProbeSpec,
    ProfileSpec,
    QueryTier,
    RelationalIntrospection,
    RowCountStrategy,
)
from schemagraph.dal.util.identifiers import quote_mysql_ident

_SYSTEM_SCHEMAS = "('information_schema', 'mysql', 'performance_schema', 'sys')"

TABLES_WITH_COMMENTS = f"""
SELECT
  table_schema AS table_schema,
  table_name AS table_name,
  table_type AS table_type,
  table_comment AS table_comment
FROM information_schema.tables
WHERE table_schema NOT IN {_SYSTEM_SCHEMAS}
ORDER BY table_schema, table_name
"""

# SHOW-level privilege on the current database only.
TABLES_CURRENT_DATABASE = """
SELECT
  table_schema AS table_schema,
  table_name AS table_name,
  table_type AS table_type
FROM information_schema.tables
WHERE table_schema = DATABASE()
ORDER BY table_name
"""

COLUMNS = f"""
SELECT
  table_schema AS table_schema,
  table_name AS table_name,
  column_name AS column_name,
  column_type AS data_type,
  is_nullable AS is_nullable,
  column_default AS column_default,
  column_comment AS column_comment
FROM information_schema.columns
WHERE table_schema NOT IN {_SYSTEM_SCHEMAS}
ORDER BY table_schema, table_name, ordinal_position
"""

FOREIGN_KEYS_REFERENTIAL = f"""
SELECT
  kcu.CONSTRAINT_NAME AS constraint_name,
  kcu.TABLE_SCHEMA AS table_schema,
  kcu.TABLE_NAME AS table_name,
  kcu.COLUMN_NAME AS column_name,
  kcu.REFERENCED_TABLE_SCHEMA AS foreign_table_schema,
  kcu.REFERENCED_TABLE_NAME AS foreign_table_name,
  kcu.REFERENCED_COLUMN_NAME AS foreign_column_name,
  rc.UPDATE_RULE AS update_rule,
  rc.DELETE_RULE AS delete_rule
FROM information_schema.KEY_COLUMN_USAGE kcu
JOIN information_schema.REFERENTIAL_CONSTRAINTS rc
  ON rc.CONSTRAINT_SCHEMA = kcu.CONSTRAINT_SCHEMA
  AND rc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
WHERE kcu.REFERENCED_TABLE_NAME IS NOT NULL
  AND kcu.TABLE_SCHEMA NOT IN {_SYSTEM_SCHEMAS}
ORDER BY kcu.TABLE_SCHEMA, kcu.TABLE_NAME, kcu.ORDINAL_POSITION
"""

FOREIGN_KEYS_KEY_USAGE = """
SELECT
  kcu.CONSTRAINT_NAME AS constraint_name,
  kcu.TABLE_SCHEMA AS table_schema,
  kcu.TABLE_NAME AS table_name,
  kcu.COLUMN_NAME AS column_name,
  kcu.REFERENCED_TABLE_SCHEMA AS foreign_table_schema,
  kcu.REFERENCED_TABLE_NAME AS foreign_table_name,
  kcu.REFERENCED_COLUMN_NAME AS foreign_column_name
FROM information_schema.KEY_COLUMN_USAGE kcu
WHERE kcu.REFERENCED_TABLE_NAME IS NOT NULL
  AND kcu.TABLE_SCHEMA = DATABASE()
ORDER BY kcu.TABLE_NAME, kcu.ORDINAL_POSITION
"""


def _table_rows(schema: str, name: str):
    return (
        "SELECT table_rows AS row_count FROM information_schema.TABLES "
        "WHERE table_schema = %s AND table_name = %s",
        (schema, name),
    )


def _innodb_stats(schema: str, name: str):
    return (
        "SELECT n_rows AS row_count FROM mysql.innodb_table_stats "
        "WHERE database_name = %s AND table_name = %s",
        (schema, name),
    )


def sample_column_stats(schema: str, table: str, column: str, limit: int):
    """Build the per-column sampling statement."""
    col = quote_mysql_ident(column)
    source = f"{quote_mysql_ident(schema)}.{quote_mysql_ident(table)}"
    return (
        f"""
        SELECT
          COUNT(*) AS sampled_rows,
          SUM(CASE WHEN {col} IS NULL THEN 1 ELSE 0 END) AS null_count,
          COUNT(DISTINCT {col}) AS distinct_count,
          MIN({col}) AS min_value,
          MAX({col}) AS max_value
        FROM (SELECT {col} FROM {source} LIMIT %s) AS sampled
        """,
        (int(limit),),
    )


MYSQL_INTROSPECTION = RelationalIntrospection(
    tables=ProbeSpec(
        capability="tables",
        tiers=(
            QueryTier(
                feature="information_schema.tables",
                sql=TABLES_WITH_COMMENTS,
                message="Cannot list tables across schemas. Trying the current database only.",
                suggestion="Grant SELECT on the schemas to crawl.",
                provides_comments=True,
            ),
            QueryTier(
                feature="information_schema.tables_current_database",
                sql=TABLES_CURRENT_DATABASE,
                message="Cannot list tables in the current database.",
                suggestion="Grant SHOW VIEW and SELECT on the current database.",
            ),
        ),
        unavailable_message="No table listing access available.",
        unavailable_suggestion="Grant SELECT on information_schema.TABLES.",
    ),
    column_query=COLUMNS,
    foreign_keys=ProbeSpec(
        capability="foreign_keys",
        tiers=(
            QueryTier(
                feature="foreign_keys_tier1",
                sql=FOREIGN_KEYS_REFERENTIAL,
                message="Cannot access referential constraint metadata. Trying fallback.",
                suggestion="Grant SELECT on information_schema.REFERENTIAL_CONSTRAINTS.",
            ),
            QueryTier(
                feature="foreign_keys_tier2",
                sql=FOREIGN_KEYS_KEY_USAGE,
                message="Cannot access key column usage metadata.",
                suggestion="Grant SELECT on information_schema.KEY_COLUMN_USAGE.",
            ),
        ),
        unavailable_message="No FK discovery access available.",
        unavailable_suggestion=(
            "Foreign keys must be manually documented or grant SELECT on information_schema."
        ),
    ),
    row_counts=(
        RowCountStrategy(
            feature="information_schema.TABLES",
            message="Cannot access table row counts from information_schema.",
            suggestion="Grant SELECT on information_schema.TABLES.",
            build=_table_rows,
        ),
        RowCountStrategy(
            feature="mysql.innodb_table_stats",
            message="Cannot access InnoDB table statistics. Row counts unavailable.",
            suggestion="Grant SELECT on mysql.innodb_table_stats.",
            build=_innodb_stats,
        ),
    ),
    profile=ProfileSpec(
        feature="column_sampling",
        message="Cannot sample table rows. Column statistics unavailable.",
        suggestion="Grant SELECT on the crawled tables.",
        sample_query=sample_column_stats,
    ),
)
