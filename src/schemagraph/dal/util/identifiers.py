"""Identifier quoting for SQL built from crawled names."""


def quote_ident(value: str) -> str:
    """Quote an identifier with ANSI double quotes (Postgres, DuckDB)."""
    return '"' + str(value).replace('"', '""') + '"'


def quote_mysql_ident(value: str) -> str:
    """Quote an identifier with MySQL backticks."""
    return "`" + str(value).replace("`", "``") + "`"
