from .database import GraphDatabase
from .graph_store import SqliteGraphStore
from .migrations import apply_migrations
from .source_repository import SourceRepository

__all__ = ["GraphDatabase", "SourceRepository", "SqliteGraphStore", "apply_migrations"]
