from .snapshot import (
    ForeignKeyConstraint,
    MongoCollection,
    MongoField,
    MongoSchemaSnapshot,
    SchemaColumn,
    SchemaSnapshot,
    SchemaTable,
    TableKind,
    table_key,
)
from .sources import ConnectionStatus, CrawlStatus, SourceKind, SourceRecord
from .statistics import ColumnProfile, RowCounts, TableProfile
from .warnings import AvailableFeatures, CrawlWarning, EnhancedResult, WarningLevel

__all__ = [
    "AvailableFeatures",
    "ColumnProfile",
    "ConnectionStatus",
    "CrawlStatus",
    "CrawlWarning",
    "EnhancedResult",
    "ForeignKeyConstraint",
    "MongoCollection",
    "MongoField",
    "MongoSchemaSnapshot",
    "RowCounts",
    "SchemaColumn",
    "SchemaSnapshot",
    "SchemaTable",
    "SourceKind",
    "SourceRecord",
    "TableKind",
    "TableProfile",
    "WarningLevel",
    "table_key",
]
