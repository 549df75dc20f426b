"""Exception hierarchy shared by the crawler, ingestor and graph store."""

from typing import Optional


class SchemaGraphError(Exception):
    """Base class for all schemagraph errors."""


class SourceConnectionError(SchemaGraphError):
    """A session to the external source could not be established or was lost."""

    def __init__(self, provider: str, message: str, category: Optional[str] = None) -> None:
        """Initialize with provider context and optional error category."""
        self.provider = provider
        self.category = category
        super().__init__(f"{provider}: {message}")


class CrawlCancelledError(SchemaGraphError):
    """Raised at an adapter call boundary when the crawl was cancelled."""

    def __init__(self, source_id: str, reason: str = "cancelled") -> None:
        """Initialize with the cancelled source id."""
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Crawl of source '{source_id}' was cancelled ({reason}).")


class SourceNotFoundError(SchemaGraphError):
    """Raised when a source record does not exist."""

    def __init__(self, source_id: str) -> None:
        """Initialize with the missing source id."""
        self.source_id = source_id
        super().__init__(f"Source '{source_id}' not found.")


class DuplicateSourceError(SchemaGraphError):
    """Raised when a source with the same connection identity is already registered."""

    def __init__(self, existing_id: str, identity: str) -> None:
        """Initialize with the conflicting source id."""
        self.existing_id = existing_id
        self.identity = identity
        super().__init__(f"Source '{existing_id}' already registered for {identity}.")


class IngestionError(SchemaGraphError):
    """Raised when a snapshot could not be persisted; the transaction was rolled back."""


class UnsupportedSourceKindError(SchemaGraphError, ValueError):
    """Raised for source kinds without an adapter."""

    def __init__(self, kind: str) -> None:
        """Initialize with the unsupported kind."""
        self.kind = kind
        super().__init__(f"Unsupported source kind: '{kind}'.")
