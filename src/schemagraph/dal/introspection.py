"""Provider-neutral description of a relational source's introspection surfaces.

Each relational adapter publishes a `RelationalIntrospection` naming the
queries for every tier; the metadata layer runs them through the capability
probe. Every query aliases its output columns to the row models below, so raw
rows are validated once at this boundary and never travel further untyped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

StatementBuilder = Callable[..., Tuple[str, tuple]]


@dataclass(frozen=True)
class QueryTier:
    """One introspection query, ordered most-privileged first within its probe."""

    feature: str
    sql: str
    message: str
    suggestion: Optional[str] = None
    provides_comments: bool = False
    params: tuple = ()


@dataclass(frozen=True)
class ProbeSpec:
    """A named capability and the tiers that can provide it."""

    capability: str
    tiers: Sequence[QueryTier]
    unavailable_message: str
    unavailable_suggestion: Optional[str] = None
    # Run every tier and merge the results instead of stopping at the first answer.
    accumulate: bool = False


@dataclass(frozen=True)
class RowCountStrategy:
    """One row-count source, queried per table."""

    feature: str
    message: str
    suggestion: Optional[str]
    build: StatementBuilder
    value_key: str = "row_count"

    async def count(self, adapter: Any, schema: str, name: str) -> Optional[int]:
        """Return the count for one table, or None when the source has no row for it."""
        sql, params = self.build(schema, name)
        rows = await adapter.fetch(sql, *params)
        if not rows:
            return None
        value = rows[0].get(self.value_key)
        if value is None:
            return None
        count = int(value)
        return count if count >= 0 else None


@dataclass(frozen=True)
class ProfileSpec:
    """Column-statistics surface: one bulk catalog query or per-column sampling."""

    feature: str
    message: str
    suggestion: Optional[str] = None
    bulk_query: Optional[str] = None
    sample_query: Optional[StatementBuilder] = None


@dataclass(frozen=True)
class RelationalIntrospection:
    tables: ProbeSpec
    column_query: str
    foreign_keys: ProbeSpec
    row_counts: Sequence[RowCountStrategy] = field(default_factory=tuple)
    profile: Optional[ProfileSpec] = None


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str) and not value.strip():
        return None
    return value


class TableRow(_Row):
    table_schema: str
    table_name: str
    table_type: str = "BASE TABLE"
    table_comment: Optional[str] = None

    normalize_comment = field_validator("table_comment", mode="before")(_blank_to_none)

    @property
    def is_view(self) -> bool:
        return self.table_type.upper() == "VIEW"


class ColumnRow(_Row):
    table_schema: str
    table_name: str
    column_name: str
    data_type: str
    is_nullable: str = "YES"
    column_default: Optional[str] = None
    column_comment: Optional[str] = None

    normalize_comment = field_validator("column_comment", mode="before")(_blank_to_none)

    @field_validator("column_default", mode="before")
    @classmethod
    def default_as_text(cls, value: Any) -> Optional[str]:
        value = _blank_to_none(value)
        return None if value is None else str(value)

    @field_validator("is_nullable", mode="before")
    @classmethod
    def nullable_as_text(cls, value: Any) -> str:
        if isinstance(value, bool):
            return "YES" if value else "NO"
        return str(value).upper()


class ForeignKeyRow(_Row):
    constraint_name: str
    table_schema: str
    table_name: str
    column_name: str
    foreign_table_schema: str
    foreign_table_name: str
    foreign_column_name: str
    update_rule: Optional[str] = None
    delete_rule: Optional[str] = None


class ProfileRow(_Row):
    table_schema: str
    table_name: str
    column_name: str
    null_frac: Optional[float] = None
    n_distinct: Optional[float] = None


class SampleStatsRow(_Row):
    sampled_rows: int = 0
    null_count: Optional[int] = None
    distinct_count: Optional[int] = None
    min_value: Optional[Any] = None
    max_value: Optional[Any] = None
