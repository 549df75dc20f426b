"""Column statistics produced by the profiler."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from schemagraph.schema.snapshot import table_key

RowCounts = Dict[str, Optional[int]]


class ColumnProfile(BaseModel):
    """Statistics for one column or document field path."""

    column: str
    null_fraction: Optional[float] = None
    distinct_fraction: Optional[float] = None
    distinct_count: Optional[int] = None
    min: Optional[Any] = None
    max: Optional[Any] = None
    sample_count: Optional[int] = None


class TableProfile(BaseModel):
    """Statistics for every profiled column of a table or collection."""

    schema_name: str
    name: str
    columns: List[ColumnProfile] = Field(default_factory=list)
    sampled_rows: int = 0

    @property
    def key(self) -> str:
        return table_key(self.schema_name, self.name)


def index_profiles(profiles: Optional[List[TableProfile]]) -> Dict[tuple, ColumnProfile]:
    """Index profiles by `(schema.table, column)`; later entries win on duplicates."""
    index: Dict[tuple, ColumnProfile] = {}
    for profile in profiles or []:
        for column in profile.columns:
            index[(profile.key, column.column)] = column
    return index
