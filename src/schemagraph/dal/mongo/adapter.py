import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pymongo import MongoClient

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import SchemaGraphError, SourceConnectionError
from schemagraph.common.sanitization import bounded_error_message
from schemagraph.dal.connection_config import MongoConnectionConfig
from schemagraph.dal.error_classification import classify_error_info
from schemagraph.dal.tracing import trace_query_operation
from schemagraph.dal.util.read_only import enforce_read_only_pipeline
from schemagraph.dal.util.row_limits import cap_rows_with_metadata
from schemagraph.dal.util.timeouts import run_with_timeout
from schemagraph.schema.sources import SourceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MongoQuery:
    """Aggregation descriptor accepted by `MongoSourceAdapter.fetch`."""

    collection: str
    pipeline: Sequence[Dict[str, Any]] = field(default_factory=tuple)


class MongoSourceAdapter:
    """Crawl session over a pymongo client; blocking driver calls run in a worker thread."""

    kind = SourceKind.MONGO
    provider = "mongo"
    execution_model = "sync"

    def __init__(
        self, config: MongoConnectionConfig, settings: Optional[CrawlerSettings] = None
    ) -> None:
        """Initialize with a validated connection config."""
        self._config = config
        self._settings = settings or CrawlerSettings.from_env()
        self._client: Optional[MongoClient] = None
        self._truncated_fetches = 0

    @property
    def database(self) -> str:
        return self._config.database

    @property
    def truncated_fetches(self) -> int:
        """Number of aggregations this session that CRAWL_MAX_ROWS cut short."""
        return self._truncated_fetches

    def _db(self):
        if self._client is None:
            raise SourceConnectionError(self.provider, "adapter is not connected")
        return self._client[self._config.database]

    async def connect(self) -> None:
        if self._client is not None:
            return
        if self._config.uri is None:
            raise SourceConnectionError(self.provider, "no connection URI was resolved")

        kwargs: Dict[str, Any] = {
            "connectTimeoutMS": self._config.connect_timeout_ms,
            "serverSelectionTimeoutMS": self._settings.connect_timeout_seconds * 1000,
            "appname": "schemagraph_crawler",
        }
        if self._config.replica_set:
            kwargs["replicaSet"] = self._config.replica_set

        client = MongoClient(self._config.uri.get_secret_value(), **kwargs)
        try:
            await run_with_timeout(
                lambda: asyncio.to_thread(client.admin.command, "ping"),
                self._settings.connect_timeout_seconds,
                provider=self.provider,
                operation_name="connect",
            )
        except SchemaGraphError:
            client.close()
            raise
        except Exception as exc:
            client.close()
            category = classify_error_info(self.provider, exc).category
            raise SourceConnectionError(
                self.provider, bounded_error_message(exc), category=category
            ) from exc
        self._client = client
        logger.info(
            "source_connected",
            extra={"event": "source_connected", "provider": self.provider},
        )

    async def _call(self, operation_name: str, func, statement: Optional[str] = None):
        async def _run():
            return await run_with_timeout(
                lambda: asyncio.to_thread(func),
                self._settings.query_timeout_seconds,
                provider=self.provider,
                operation_name=operation_name,
            )

        return await trace_query_operation(
            f"dal.mongo.{operation_name}",
            provider=self.provider,
            execution_model=self.execution_model,
            statement=statement,
            operation=_run(),
        )

    async def list_collections(self) -> List[str]:
        """Return user collection names sorted by name."""
        db = self._db()
        names = await self._call("list_collections", db.list_collection_names)
        return sorted(name for name in names if not name.startswith("system."))

    async def aggregate(
        self, collection: str, pipeline: Sequence[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Run a read-only aggregation and return at most CRAWL_MAX_ROWS documents."""
        enforce_read_only_pipeline(pipeline, self.provider)
        db = self._db()
        max_time_ms = self._settings.query_timeout_seconds * 1000

        def _run():
            cursor = db[collection].aggregate(list(pipeline), maxTimeMS=max_time_ms)
            try:
                documents = []
                for document in cursor:
                    documents.append(document)
                    if self._settings.max_rows and len(documents) > self._settings.max_rows:
                        break
                return documents
            finally:
                cursor.close()

        documents = await self._call("aggregate", _run, statement=f"{collection}:{pipeline!r}")
        capped, truncated = cap_rows_with_metadata(documents, self._settings.max_rows)
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

    async def estimated_document_count(self, collection: str) -> int:
        """Return the collection metadata count (no scan)."""
        db = self._db()
        return int(
            await self._call("estimated_document_count", db[collection].estimated_document_count)
        )

    async def fetch(self, query: MongoQuery, *params: Any) -> List[Dict[str, Any]]:
        return await self.aggregate(query.collection, query.pipeline)

    async def health_check(self) -> bool:
        client = self._client
        if client is None:
            raise SourceConnectionError(self.provider, "adapter is not connected")
        reply = await self._call("ping", lambda: client.admin.command("ping"))
        return bool(reply.get("ok"))

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await asyncio.to_thread(client.close)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
