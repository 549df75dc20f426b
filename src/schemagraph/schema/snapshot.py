"""In-memory crawl results. Never persisted directly."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class TableKind(str, Enum):
    """Relational object kinds the crawler records."""

    BASE_TABLE = "BASE TABLE"
    VIEW = "VIEW"


def table_key(schema: str, name: str) -> str:
    """Return the `schema.name` key identifying a table or collection within a snapshot."""
    return f"{schema}.{name}"


class SchemaColumn(BaseModel):
    """One column as declared by the source; `data_type` is never normalized."""

    name: str
    data_type: str
    nullable: bool = True
    default_value: Optional[str] = None
    comment: Optional[str] = None


class SchemaTable(BaseModel):
    """A table or view with its columns in introspection order."""

    schema_name: str
    name: str
    kind: TableKind = TableKind.BASE_TABLE
    comment: Optional[str] = None
    columns: List[SchemaColumn] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return table_key(self.schema_name, self.name)

    @model_validator(mode="after")
    def _unique_column_names(self) -> "SchemaTable":
        seen = set()
        for column in self.columns:
            if column.name in seen:
                raise ValueError(f"Duplicate column '{column.name}' in table '{self.key}'.")
            seen.add(column.name)
        return self


class ForeignKeyConstraint(BaseModel):
    """A single-column foreign key mapping; composite keys yield one entry per column."""

    constraint_name: str
    source_schema: str
    source_table: str
    source_column: str
    target_schema: str
    target_table: str
    target_column: str
    update_rule: Optional[str] = None
    delete_rule: Optional[str] = None

    @property
    def source_key(self) -> str:
        return table_key(self.source_schema, self.source_table)

    @property
    def target_key(self) -> str:
        return table_key(self.target_schema, self.target_table)


class SchemaSnapshot(BaseModel):
    """Relational crawl result for one source."""

    tables: List[SchemaTable] = Field(default_factory=list)
    foreign_keys: Optional[List[ForeignKeyConstraint]] = None

    @model_validator(mode="after")
    def _unique_table_keys(self) -> "SchemaSnapshot":
        seen = set()
        for table in self.tables:
            if table.key in seen:
                raise ValueError(f"Duplicate table key '{table.key}' in snapshot.")
            seen.add(table.key)
        return self

    def find_table(self, schema: str, name: str) -> Optional[SchemaTable]:
        """Return the table with the given key, if present."""
        key = table_key(schema, name)
        for table in self.tables:
            if table.key == key:
                return table
        return None


class MongoField(BaseModel):
    """A field path inferred from sampled documents.

    Nested document keys are dotted (`address.city`); array elements are
    suffixed with `[]` (`tags[]`).
    """

    path: str
    types: List[str] = Field(default_factory=list)
    nullable: bool = False
    is_array: bool = False

    @property
    def parent_path(self) -> Optional[str]:
        """Return the enclosing field path for nested fields."""
        trimmed = self.path[:-2] if self.path.endswith("[]") else self.path
        if trimmed != self.path:
            return trimmed
        if "." not in self.path:
            return None
        return self.path.rsplit(".", 1)[0]


class MongoCollection(BaseModel):
    """A sampled collection with its inferred fields."""

    database: str
    name: str
    sample_size: int = 0
    document_count: Optional[int] = None
    fields: List[MongoField] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return table_key(self.database, self.name)


class MongoSchemaSnapshot(BaseModel):
    """Document-store crawl result for one source."""

    collections: List[MongoCollection] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_collection_keys(self) -> "MongoSchemaSnapshot":
        seen = set()
        for collection in self.collections:
            if collection.key in seen:
                raise ValueError(f"Duplicate collection '{collection.key}' in snapshot.")
            seen.add(collection.key)
        return self
