"""Read-only SQL enforcement for crawl connections."""

import logging
import re

import sqlglot
from opentelemetry import trace
from sqlglot import exp

logger = logging.getLogger(__name__)

_SQLGLOT_DIALECTS = {
    "postgres": "postgres",
    "mysql": "mysql",
    "duckdb": "duckdb",
}
_ALLOWED_ROOTS = (exp.Select, exp.Union, exp.Intersect, exp.Except, exp.Subquery)
_FORBIDDEN_NODES = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Drop,
    exp.Alter,
    exp.Create,
    exp.Command,
    exp.Merge,
    exp.TruncateTable,
)
_FALLBACK_READ_PREFIXES = {"SELECT", "WITH", "SHOW", "DESCRIBE", "SUMMARIZE", "EXPLAIN"}
_SQL_COMMENT_RE = re.compile(r"(--[^\n]*|/\*.*?\*/)", flags=re.DOTALL)


def is_mutating_sql(sql: str, provider: str) -> bool:
    """Best-effort detection of statements that could write to the source."""
    if not isinstance(sql, str):
        return True
    stripped = _SQL_COMMENT_RE.sub(" ", sql).strip().rstrip(";").strip()
    if not stripped:
        return True

    try:
        expressions = sqlglot.parse(stripped, read=_SQLGLOT_DIALECTS.get(provider))
    except Exception:
        expressions = None

    if expressions:
        if len(expressions) != 1 or expressions[0] is None:
            return True
        expression = expressions[0]
        if not isinstance(expression, _ALLOWED_ROOTS):
            return True
        return any(isinstance(node, _FORBIDDEN_NODES) for node in expression.walk())

    # Parser failures fall back to a lexical allowlist on the leading keyword.
    first_token = stripped.split(maxsplit=1)[0].upper()
    return first_token not in _FALLBACK_READ_PREFIXES


class ReadOnlyViolationError(PermissionError):
    """A mutating statement reached a crawl connection. Never a capability warning."""


def enforce_read_only_sql(sql: str, provider: str) -> None:
    """Raise ReadOnlyViolationError when a crawl connection is asked to run mutating SQL."""
    if not is_mutating_sql(sql, provider):
        return

    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event("dal.read_only.blocked", attributes={"provider": provider})
    logger.error(
        "read_only_sql_blocked",
        extra={"event": "read_only_sql_blocked", "provider": provider},
    )
    raise ReadOnlyViolationError(
        f"Read-only enforcement blocked non-SELECT statement for provider '{provider}'."
    )


_FORBIDDEN_PIPELINE_STAGES = {"$out", "$merge"}


def enforce_read_only_pipeline(pipeline, provider: str = "mongo") -> None:
    """Reject aggregation pipelines containing stages that write."""
    for stage in pipeline or []:
        if not isinstance(stage, dict):
            raise ReadOnlyViolationError("Aggregation stages must be documents.")
        blocked = _FORBIDDEN_PIPELINE_STAGES.intersection(stage.keys())
        if blocked:
            logger.error(
                "read_only_pipeline_blocked",
                extra={
                    "event": "read_only_pipeline_blocked",
                    "provider": provider,
                    "stage": sorted(blocked)[0],
                },
            )
            raise ReadOnlyViolationError(
                f"Read-only enforcement blocked pipeline stage '{sorted(blocked)[0]}'."
            )
