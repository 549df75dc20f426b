"""Source adapter contract and the shared base for SQL sources."""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import SchemaGraphError, SourceConnectionError
from schemagraph.common.sanitization import bounded_error_message
from schemagraph.dal.error_classification import classify_error_info
from schemagraph.dal.introspection import RelationalIntrospection
from schemagraph.dal.tracing import trace_query_operation
from schemagraph.dal.util.read_only import enforce_read_only_sql
from schemagraph.dal.util.row_limits import cap_rows_with_metadata
from schemagraph.dal.util.timeouts import run_with_timeout
from schemagraph.schema.sources import SourceKind

logger = logging.getLogger(__name__)


@runtime_checkable
class SourceAdapter(Protocol):
    """A read-only session to one external source."""

    kind: SourceKind
    provider: str

    async def connect(self) -> None:
        """Open the session; raises SourceConnectionError when the source is unreachable."""
        ...

    async def fetch(self, query: Any, *params: Any) -> List[Dict[str, Any]]:
        """Run one bounded read-only query and return rows as dicts."""
        ...

    async def health_check(self) -> bool:
        """Return True when the session answers a trivial query."""
        ...

    async def close(self) -> None:
        """Release the session."""
        ...


@runtime_checkable
class RelationalSourceAdapter(SourceAdapter, Protocol):
    introspection: RelationalIntrospection


@runtime_checkable
class DocumentSourceAdapter(SourceAdapter, Protocol):
    database: str

    async def list_collections(self) -> List[str]:
        ...

    async def aggregate(self, collection: str, pipeline: Sequence[dict]) -> List[Dict[str, Any]]:
        ...

    async def estimated_document_count(self, collection: str) -> int:
        ...


class BaseSqlAdapter:
    """Connect, timeout, read-only and tracing plumbing shared by SQL adapters.

    Subclasses implement `_open`, `_execute` and `_close`; `_cancel` is an
    optional hook invoked when a query exceeds its timeout.
    """

    kind: SourceKind
    provider: str = "unknown"
    execution_model: str = "async"
    introspection: RelationalIntrospection
    health_check_sql: str = "SELECT 1 AS ok"

    def __init__(self, settings: Optional[CrawlerSettings] = None) -> None:
        """Initialize with crawl bounds (defaults from the environment)."""
        self._settings = settings or CrawlerSettings.from_env()
        self._connected = False
        self._last_truncated = False
        self._truncated_fetches = 0

    @property
    def last_truncated(self) -> bool:
        """Return True when the last fetch was truncated by CRAWL_MAX_ROWS."""
        return self._last_truncated

    @property
    def truncated_fetches(self) -> int:
        """Number of fetches this session that CRAWL_MAX_ROWS cut short."""
        return self._truncated_fetches

    async def connect(self) -> None:
        if self._connected:
            return
        try:
            await run_with_timeout(
                self._open,
                self._settings.connect_timeout_seconds,
                provider=self.provider,
                operation_name="connect",
            )
        except SchemaGraphError:
            raise
        except Exception as exc:
            category = classify_error_info(self.provider, exc).category
            raise SourceConnectionError(
                self.provider, bounded_error_message(exc), category=category
            ) from exc
        self._connected = True
        logger.info(
            "source_connected",
            extra={"event": "source_connected", "provider": self.provider},
        )

    async def fetch(self, query: str, *params: Any) -> List[Dict[str, Any]]:
        if not self._connected:
            raise SourceConnectionError(self.provider, "adapter is not connected")
        enforce_read_only_sql(query, self.provider)

        async def _run():
            rows = await run_with_timeout(
                lambda: self._execute(query, params),
                self._settings.query_timeout_seconds,
                self._cancel,
                provider=self.provider,
                operation_name="fetch",
            )
            capped, truncated = cap_rows_with_metadata(list(rows), self._settings.max_rows)
            self._last_truncated = truncated
            if truncated:
                self._truncated_fetches += 1
                logger.warning(
                    "introspection_rows_truncated",
                    extra={
                        "event": "introspection_rows_truncated",
                        "provider": self.provider,
                        "max_rows": self._settings.max_rows,
                    },
                )
            return capped

        return await trace_query_operation(
            "dal.query.fetch",
            provider=self.provider,
            execution_model=self.execution_model,
            statement=query,
            operation=_run(),
        )

    async def health_check(self) -> bool:
        rows = await self.fetch(self.health_check_sql)
        return bool(rows)

    async def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await self._close()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _open(self) -> None:
        raise NotImplementedError

    async def _execute(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def _close(self) -> None:
        raise NotImplementedError

    _cancel = None
