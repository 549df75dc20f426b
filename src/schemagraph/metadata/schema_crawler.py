"""Schema crawl: tables and columns for relational sources, sampled fields for documents."""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.error_classification import emit_classified_error
from schemagraph.dal.introspection import ColumnRow, QueryTier, TableRow
from schemagraph.dal.mongo.queries import sample_pipeline
from schemagraph.metadata.capability_probe import (
    CapabilityProbe,
    ProbeTier,
    probe_from_spec,
    record_warning,
)
from schemagraph.metadata.document_inference import infer_fields
from schemagraph.schema.snapshot import (
    MongoCollection,
    MongoSchemaSnapshot,
    SchemaColumn,
    SchemaSnapshot,
    SchemaTable,
    TableKind,
)
from schemagraph.schema.warnings import (
    AvailableFeatures,
    CrawlWarning,
    EnhancedResult,
    WarningLevel,
)

module_logger = logging.getLogger(__name__)

RowModel = TypeVar("RowModel", bound=BaseModel)


def parse_rows(
    rows: Sequence[Dict[str, Any]],
    model: Type[RowModel],
    provider: str,
    feature: str,
    log: Optional[logging.Logger] = None,
) -> List[RowModel]:
    """Validate raw rows; malformed rows are skipped with a logged warning."""
    parsed: List[RowModel] = []
    skipped = 0
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError:
            skipped += 1
    if skipped:
        (log or module_logger).warning(
            "introspection_rows_skipped",
            extra={
                "event": "introspection_rows_skipped",
                "provider": provider,
                "feature": feature,
                "skipped": skipped,
            },
        )
    return parsed


def query_tier(adapter: Any, tier: QueryTier, model: Type[RowModel], log=None) -> ProbeTier:
    """Wrap a published query tier as a probe tier that returns validated rows."""

    async def _run() -> List[RowModel]:
        rows = await adapter.fetch(tier.sql, *tier.params)
        return parse_rows(rows, model, adapter.provider, tier.feature, log)

    return ProbeTier(
        feature=tier.feature,
        run=_run,
        message=tier.message,
        suggestion=tier.suggestion,
        provides_comments=tier.provides_comments,
    )


def _excluded(schema: str, settings: CrawlerSettings) -> bool:
    return schema in settings.excluded_schemas


async def crawl_schema(
    adapter: Any,
    logger: Optional[logging.Logger] = None,
    settings: Optional[CrawlerSettings] = None,
) -> EnhancedResult:
    """Crawl one source's schema.

    Relational sources return `EnhancedResult[SchemaSnapshot]`; document
    sources return `EnhancedResult[MongoSchemaSnapshot]`. Permission failures
    become warnings; connectivity errors and timeouts propagate.
    """
    log = logger or module_logger
    settings = settings or CrawlerSettings.from_env()
    if adapter.kind.is_document:
        return await crawl_document_schema(adapter, log, settings)
    return await crawl_relational_schema(adapter, log, settings)


async def crawl_relational_schema(
    adapter: Any, log: logging.Logger, settings: CrawlerSettings
) -> EnhancedResult[SchemaSnapshot]:
    spec = adapter.introspection
    provider = adapter.provider

    table_probe = probe_from_spec(provider, spec.tables, logger=log)
    tables_outcome = await table_probe.run(
        [query_tier(adapter, tier, TableRow, log) for tier in spec.tables.tiers]
    )
    warnings: List[CrawlWarning] = list(tables_outcome.warnings)
    table_rows = [
        row for row in (tables_outcome.value or []) if not _excluded(row.table_schema, settings)
    ]

    columns_by_table: Dict[Tuple[str, str], List[SchemaColumn]] = defaultdict(list)
    if table_rows:
        column_probe = CapabilityProbe(
            provider,
            "columns",
            "Cannot list columns. Tables are recorded without columns.",
            "Grant SELECT on information_schema.columns.",
            logger=log,
        )
        column_tier = QueryTier(
            feature="columns", sql=spec.column_query, message="Cannot list columns."
        )
        columns_outcome = await column_probe.run(
            [query_tier(adapter, column_tier, ColumnRow, log)]
        )
        warnings.extend(columns_outcome.warnings)
        for row in columns_outcome.value or []:
            columns_by_table[(row.table_schema, row.table_name)].append(
                SchemaColumn(
                    name=row.column_name,
                    data_type=row.data_type,
                    nullable=row.is_nullable == "YES",
                    default_value=row.column_default,
                    comment=row.column_comment,
                )
            )

    tables: List[SchemaTable] = []
    seen = set()
    for row in table_rows:
        key = (row.table_schema, row.table_name)
        if key in seen:
            continue
        seen.add(key)
        tables.append(
            SchemaTable(
                schema_name=row.table_schema,
                name=row.table_name,
                kind=TableKind.VIEW if row.is_view else TableKind.BASE_TABLE,
                comment=row.table_comment,
                columns=_dedupe_columns(columns_by_table.pop(key, [])),
            )
        )

    orphans = sum(len(columns) for columns in columns_by_table.values())
    if orphans:
        log.debug(
            "crawl_orphan_columns_dropped",
            extra={
                "event": "crawl_orphan_columns_dropped",
                "provider": provider,
                "orphan_columns": orphans,
            },
        )

    log.info(
        "schema_crawled",
        extra={
            "event": "schema_crawled",
            "provider": provider,
            "tables": len(tables),
            "warnings": len(warnings),
        },
    )
    return EnhancedResult[SchemaSnapshot](
        data=SchemaSnapshot(tables=tables),
        warnings=warnings,
        available_features=AvailableFeatures(
            has_comments=tables_outcome.provides_comments,
            has_permission_errors=bool(warnings),
        ),
    )


def _dedupe_columns(columns: List[SchemaColumn]) -> List[SchemaColumn]:
    seen = set()
    unique = []
    for column in columns:
        if column.name not in seen:
            seen.add(column.name)
            unique.append(column)
    return unique


async def crawl_document_schema(
    adapter: Any, log: logging.Logger, settings: CrawlerSettings
) -> EnhancedResult[MongoSchemaSnapshot]:
    provider = adapter.provider
    database = adapter.database

    collections_probe = CapabilityProbe(
        provider,
        "collections",
        "Cannot list collections.",
        "Grant the listCollections action on the database.",
        logger=log,
    )
    listing = await collections_probe.run(
        [
            ProbeTier(
                feature="list_collections",
                run=adapter.list_collections,
                message="Cannot list collections.",
            )
        ]
    )
    warnings: List[CrawlWarning] = list(listing.warnings)
    collections: List[MongoCollection] = []

    for name in listing.value or []:
        try:
            documents = await adapter.aggregate(name, sample_pipeline(settings.mongo_sample_size))
        except Exception as exc:
            if not emit_classified_error(provider, "collection_sampling", exc).is_capability_error:
                raise
            record_warning(
                warnings,
                CrawlWarning(
                    level=WarningLevel.WARNING,
                    feature="collection_sampling",
                    message=f"Cannot sample collection {name}.",
                    suggestion="Grant read permissions on this collection.",
                ),
                provider,
                log,
            )
            documents = []

        collections.append(
            MongoCollection(
                database=database,
                name=name,
                sample_size=len(documents),
                fields=infer_fields(documents),
            )
        )

    log.info(
        "schema_crawled",
        extra={
            "event": "schema_crawled",
            "provider": provider,
            "collections": len(collections),
            "warnings": len(warnings),
        },
    )
    return EnhancedResult[MongoSchemaSnapshot](
        data=MongoSchemaSnapshot(collections=collections),
        warnings=warnings,
        available_features=AvailableFeatures(
            has_permission_errors=bool(warnings),
        ),
    )
