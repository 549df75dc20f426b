"""Provider normalization.

Canonical Provider IDs (internal, lowercase):
- "postgres" - PostgreSQL sources
- "mysql" - MySQL / MariaDB sources
- "mongo" - MongoDB sources
- "duckdb" - DuckDB database files

Example:
    >>> normalize_provider("PostgreSQL")
    'postgres'
    >>> normalize_provider("MongoDB")
    'mongo'
"""

PROVIDER_ALIASES: dict[str, str] = {
    "postgresql": "postgres",
    "postgres": "postgres",
    "pg": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "mongo": "mongo",
    "mongodb": "mongo",
    "duckdb": "duckdb",
    "duck": "duckdb",
}


def normalize_provider(value: str) -> str:
    """Normalize a provider value to its canonical form.

    Unknown values pass through lowercased (validation happens separately).
    """
    normalized = (value or "").strip().lower()
    return PROVIDER_ALIASES.get(normalized, normalized)
