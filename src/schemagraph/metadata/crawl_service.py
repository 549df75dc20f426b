"""Crawl orchestration for registered sources.

`MetadataCrawlService.crawl_source` runs schema, foreign-key, row-count and
profile discovery over one adapter connection and hands the assembled
snapshot to the ingestor. Crawls of one source are serialized by a
per-source lock; a delete cancels the in-flight crawl before cascading.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from schemagraph.common.audit import (
    AuditAction,
    AuditSink,
    AuditStatus,
    LoggingAuditSink,
    build_audit_event,
)
from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import CrawlCancelledError, SourceNotFoundError
from schemagraph.common.observability.context import crawl_id_var, source_id_var
from schemagraph.common.observability.metrics import crawl_metrics
from schemagraph.common.sanitization import bounded_error_message
from schemagraph.dal.credentials import CredentialProvider
from schemagraph.dal.error_classification import classify_error_info
from schemagraph.dal.factory import create_source_adapter
from schemagraph.dal.sqlite.database import GraphDatabase
from schemagraph.dal.sqlite.graph_store import SqliteGraphStore
from schemagraph.dal.sqlite.source_repository import SourceRepository
from schemagraph.ingestion.graph_ingestor import GraphIngestor, IngestionResult
from schemagraph.metadata.cancellation import CancellableAdapter, CancellationToken
from schemagraph.metadata.capability_probe import record_warning
from schemagraph.metadata.relationships import get_foreign_keys
from schemagraph.metadata.schema_crawler import crawl_schema
from schemagraph.metadata.statistics import get_row_counts, profile_tables
from schemagraph.schema.graph import DeleteCounts
from schemagraph.schema.sources import ConnectionStatus, CrawlStatus, SourceRecord
from schemagraph.schema.warnings import AvailableFeatures, CrawlWarning, WarningLevel

module_logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., Any]


class CrawlOutcome(BaseModel):
    """Summary of one successful crawl."""

    source_id: str
    crawl_id: str
    tables: int = 0
    columns: int = 0
    foreign_keys: int = 0
    warnings: List[CrawlWarning] = Field(default_factory=list)
    available_features: AvailableFeatures = Field(default_factory=AvailableFeatures)
    ingestion: Optional[IngestionResult] = None
    duration_seconds: float = 0.0


class ConnectionCheck(BaseModel):
    source_id: str
    status: ConnectionStatus
    error: Optional[str] = None


class MetadataCrawlService:
    def __init__(
        self,
        database: GraphDatabase,
        *,
        credentials: Optional[CredentialProvider] = None,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[CrawlerSettings] = None,
        adapter_factory: AdapterFactory = create_source_adapter,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings or CrawlerSettings.from_env()
        self._logger = logger or module_logger
        self._credentials = credentials
        self._audit = audit_sink or LoggingAuditSink()
        self._adapter_factory = adapter_factory
        self.sources = SourceRepository(database)
        self.graph = SqliteGraphStore(database)
        self._ingestor = GraphIngestor(database, self._settings, self._logger)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    def _lock_for(self, source_id: str) -> asyncio.Lock:
        lock = self._locks.get(source_id)
        if lock is None:
            lock = self._locks[source_id] = asyncio.Lock()
        return lock

    def is_crawling(self, source_id: str) -> bool:
        return source_id in self._tokens

    def cancel_crawl(self, source_id: str, reason: str = "cancelled") -> bool:
        """Request cancellation of the in-flight crawl; returns False when none is running."""
        token = self._tokens.get(source_id)
        if token is None:
            return False
        token.cancel(reason)
        return True

    async def _build_adapter(self, record: SourceRecord, token: CancellationToken):
        secrets = await self._credentials.resolve(record) if self._credentials else {}
        adapter = self._adapter_factory(record.kind, record.config, self._settings, secrets)
        return CancellableAdapter(adapter, token)

    async def crawl_source(self, source_id: str) -> CrawlOutcome:
        """Crawl one source and persist the result.

        Raises:
            SourceNotFoundError: If the source is not registered.
            CrawlCancelledError: If the source was deleted mid-crawl.
            SourceConnectionError: If the source is unreachable.
        """
        crawl_id = uuid.uuid4().hex
        crawl_token = crawl_id_var.set(crawl_id)
        source_token = source_id_var.set(source_id)
        try:
            async with self._lock_for(source_id):
                return await self._crawl_locked(source_id, crawl_id)
        finally:
            crawl_id_var.reset(crawl_token)
            source_id_var.reset(source_token)

    async def _crawl_locked(self, source_id: str, crawl_id: str) -> CrawlOutcome:
        record = await self.sources.get_source(source_id)
        token = CancellationToken(source_id)
        self._tokens[source_id] = token
        started = time.monotonic()
        self._audit.record(
            build_audit_event(
                AuditAction.CRAWL_STARTED,
                AuditStatus.QUEUED,
                source_id=source_id,
                details={"kind": record.kind.value},
            )
        )
        await self.sources.update_crawl_status(source_id, CrawlStatus.CRAWLING)

        try:
            outcome = await self._run_crawl(record, token, crawl_id)
        except CrawlCancelledError as exc:
            await self._set_error_status(
                source_id, bounded_error_message(exc), {"category": "cancelled"}
            )
            self._audit.record(
                build_audit_event(
                    AuditAction.CRAWL_CANCELLED,
                    AuditStatus.CANCELLED,
                    source_id=source_id,
                    details={"reason": exc.reason},
                )
            )
            crawl_metrics.add_counter(
                "schemagraph.crawl.outcomes_total", attributes={"status": "cancelled"}
            )
            raise
        except Exception as exc:
            await self._record_failure(record, exc)
            raise
        finally:
            if self._tokens.get(source_id) is token:
                del self._tokens[source_id]

        outcome.duration_seconds = round(time.monotonic() - started, 3)
        await self.sources.update_crawl_status(source_id, CrawlStatus.CRAWLED)
        self._audit.record(
            build_audit_event(
                AuditAction.CRAWL_COMPLETED,
                AuditStatus.SUCCESS,
                source_id=source_id,
                details={
                    "tables": outcome.tables,
                    "columns": outcome.columns,
                    "foreign_keys": outcome.foreign_keys,
                    "warnings": len(outcome.warnings),
                },
            )
        )
        crawl_metrics.add_counter(
            "schemagraph.crawl.outcomes_total", attributes={"status": "success"}
        )
        crawl_metrics.record_histogram(
            "schemagraph.crawl.duration_seconds",
            outcome.duration_seconds,
            unit="s",
            attributes={"provider": record.kind.value},
        )
        return outcome

    async def _record_failure(self, record: SourceRecord, exc: Exception) -> None:
        info = classify_error_info(record.kind.value, exc)
        message = bounded_error_message(exc)
        self._logger.error(
            "crawl_failed",
            extra={
                "event": "crawl_failed",
                "source_id": record.id,
                "provider": record.kind.value,
                "error_category": info.category,
                "error_type": exc.__class__.__name__,
            },
        )
        await self._set_error_status(
            record.id,
            message,
            {"category": info.category, "error_type": exc.__class__.__name__},
        )
        self._audit.record(
            build_audit_event(
                AuditAction.CRAWL_FAILED,
                AuditStatus.FAILURE,
                source_id=record.id,
                details={"error_category": info.category, "error": message},
            )
        )
        crawl_metrics.add_counter(
            "schemagraph.crawl.outcomes_total",
            attributes={"status": "failure", "error_category": info.category},
        )

    async def _set_error_status(self, source_id: str, message: str, meta: Dict[str, Any]) -> None:
        try:
            await self.sources.update_crawl_status(
                source_id, CrawlStatus.ERROR, error=message, error_meta=meta
            )
        except SourceNotFoundError:
            # Deleted while the crawl was unwinding.
            self._logger.info(
                "crawl_status_skipped",
                extra={"event": "crawl_status_skipped", "source_id": source_id},
            )

    async def _run_crawl(
        self, record: SourceRecord, token: CancellationToken, crawl_id: str
    ) -> CrawlOutcome:
        adapter = await self._build_adapter(record, token)
        log = self._logger
        try:
            await adapter.connect()
            await adapter.health_check()

            schema = await crawl_schema(adapter, log, self._settings)
            warnings: List[CrawlWarning] = list(schema.warnings)
            features = schema.available_features.model_copy()

            foreign_keys, fk_warnings = await get_foreign_keys(adapter, log)
            warnings.extend(fk_warnings)
            if record.kind.is_document:
                snapshot = schema.data
                entities = snapshot.collections
                column_total = sum(len(item.fields) for item in entities)
            else:
                snapshot = schema.data.model_copy(update={"foreign_keys": foreign_keys})
                entities = snapshot.tables
                column_total = sum(len(item.columns) for item in entities)

            row_counts, count_warnings = await get_row_counts(adapter, entities, log)
            warnings.extend(count_warnings)
            profiles, profile_warnings = await profile_tables(
                adapter, entities, log, self._settings
            )
            warnings.extend(profile_warnings)
            truncated = getattr(adapter, "truncated_fetches", 0)
        finally:
            await self._close(adapter, record)

        if truncated:
            record_warning(
                warnings,
                CrawlWarning(
                    level=WarningLevel.WARNING,
                    feature="row_limit",
                    message=(
                        f"{truncated} introspection queries hit CRAWL_MAX_ROWS; the snapshot "
                        "is incomplete and stale nodes were not pruned."
                    ),
                    suggestion="Raise CRAWL_MAX_ROWS to crawl the full catalog.",
                ),
                record.kind.value,
                log,
            )

        features.has_row_counts = any(value is not None for value in row_counts.values())
        features.has_statistics = any(profile.columns for profile in profiles)
        features.has_permission_errors = bool(warnings)

        token.raise_if_cancelled()
        ingestion = await self._ingestor.persist_snapshot(
            record.id,
            record.kind,
            snapshot,
            stats=profiles,
            row_counts=row_counts,
            warnings=warnings,
            prune=not truncated,
        )
        warnings.extend(ingestion.warnings)

        return CrawlOutcome(
            source_id=record.id,
            crawl_id=crawl_id,
            tables=len(entities),
            columns=column_total,
            foreign_keys=len(foreign_keys),
            warnings=warnings,
            available_features=features,
            ingestion=ingestion,
        )

    async def _close(self, adapter: Any, record: SourceRecord) -> None:
        try:
            await adapter.close()
        except Exception as exc:
            self._logger.warning(
                "source_close_failed",
                extra={
                    "event": "source_close_failed",
                    "source_id": record.id,
                    "error_type": exc.__class__.__name__,
                },
            )

    async def check_connection(self, source_id: str) -> ConnectionCheck:
        """Open a session, run the health check and record the connection status."""
        record = await self.sources.get_source(source_id)
        await self.sources.update_connection_status(source_id, ConnectionStatus.CHECKING)
        adapter = await self._build_adapter(record, CancellationToken(source_id))
        try:
            await adapter.connect()
            healthy = await adapter.health_check()
        except Exception as exc:
            message = bounded_error_message(exc)
            await self.sources.update_connection_status(
                source_id, ConnectionStatus.ERROR, error=message
            )
            return ConnectionCheck(
                source_id=source_id, status=ConnectionStatus.ERROR, error=message
            )
        finally:
            await self._close(adapter, record)

        status = ConnectionStatus.CONNECTED if healthy else ConnectionStatus.ERROR
        error = None if healthy else "Health check returned no rows."
        await self.sources.update_connection_status(source_id, status, error=error)
        return ConnectionCheck(source_id=source_id, status=status, error=error)

    async def delete_source(self, source_id: str) -> DeleteCounts:
        """Cancel any in-flight crawl, wait for it to stop, then cascade-delete the source."""
        self.cancel_crawl(source_id, reason="source_deleted")
        async with self._lock_for(source_id):
            counts = await self.graph.delete_source_cascade(source_id)
        self._locks.pop(source_id, None)
        self._audit.record(
            build_audit_event(
                AuditAction.SOURCE_DELETED,
                AuditStatus.SUCCESS if counts.sources else AuditStatus.FAILURE,
                source_id=source_id,
                details=counts.model_dump(),
            )
        )
        if not counts.sources:
            raise SourceNotFoundError(source_id)
        return counts
