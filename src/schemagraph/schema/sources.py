"""Registered source records."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SourceKind(str, Enum):
    """Source kinds with a crawl adapter."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    MONGO = "mongo"
    DUCKDB = "duckdb"

    @property
    def is_document(self) -> bool:
        return self is SourceKind.MONGO


class CrawlStatus(str, Enum):
    NOT_CRAWLED = "not_crawled"
    CRAWLING = "crawling"
    CRAWLED = "crawled"
    ERROR = "error"


class ConnectionStatus(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    CONNECTED = "connected"
    ERROR = "error"


class SourceRecord(BaseModel):
    """A row of the `sources` table.

    `config` holds non-secret connection settings; secrets are resolved at
    crawl time by the credential provider.
    """

    id: str
    name: str
    kind: SourceKind
    config: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None
    owners: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    status: CrawlStatus = CrawlStatus.NOT_CRAWLED
    status_updated_at: Optional[str] = None
    last_crawl_at: Optional[str] = None
    last_error: Optional[str] = None
    last_error_meta: Optional[Dict[str, Any]] = None
    connection_status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_connected_at: Optional[str] = None
    last_connection_error: Optional[str] = None
