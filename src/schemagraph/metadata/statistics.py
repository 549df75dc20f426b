"""Row counts and column statistics."""

import logging
from collections import OrderedDict
from typing import Any, List, Optional, Sequence, Tuple

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.error_classification import emit_classified_error
from schemagraph.dal.introspection import ProfileRow, QueryTier, SampleStatsRow
from schemagraph.dal.mongo.queries import MONGO_ROW_COUNTS, sample_pipeline
from schemagraph.metadata.capability_probe import CapabilityProbe, record_warning
from schemagraph.metadata.document_inference import profile_documents
from schemagraph.metadata.schema_crawler import crawl_schema, parse_rows, query_tier
from schemagraph.schema.snapshot import table_key
from schemagraph.schema.statistics import ColumnProfile, RowCounts, TableProfile
from schemagraph.schema.warnings import CrawlWarning, WarningLevel

module_logger = logging.getLogger(__name__)


def _identify(table: Any) -> Tuple[str, str]:
    if isinstance(table, (tuple, list)):
        return table[0], table[1]
    schema = getattr(table, "schema_name", None) or getattr(table, "database")
    return schema, table.name


def _row_count_strategies(adapter: Any) -> Sequence[Any]:
    if adapter.kind.is_document:
        return MONGO_ROW_COUNTS
    return adapter.introspection.row_counts


async def get_row_counts(
    adapter: Any, tables: Sequence[Any], logger: Optional[logging.Logger] = None
) -> Tuple[RowCounts, List[CrawlWarning]]:
    """Count rows per table through a sticky fallback chain.

    Each strategy is tried per table until its first permission failure and
    is skipped for the rest of the crawl afterwards. A strategy with no
    answer for a table, or whose query fails for that table alone, falls
    through for that table only. Tables no strategy answered map to None
    (unknown, not zero). Lost connections, timeouts and cancellation still
    end the crawl.
    """
    log = logger or module_logger
    strategies = list(_row_count_strategies(adapter))
    disabled = set()
    warnings: List[CrawlWarning] = []
    counts: RowCounts = {}

    for table in tables:
        schema, name = _identify(table)
        value: Optional[int] = None
        for index, strategy in enumerate(strategies):
            if index in disabled:
                continue
            try:
                value = await strategy.count(adapter, schema, name)
            except Exception as exc:
                info = emit_classified_error(adapter.provider, strategy.feature, exc)
                if info.is_fatal:
                    raise
                if info.is_capability_error:
                    disabled.add(index)
                    warning = CrawlWarning(
                        level=WarningLevel.INFO,
                        feature=strategy.feature,
                        message=strategy.message,
                        suggestion=strategy.suggestion,
                    )
                else:
                    warning = CrawlWarning(
                        level=WarningLevel.WARNING,
                        feature=strategy.feature,
                        message=f"Row count failed for {table_key(schema, name)}.",
                        suggestion="Check that the table or view can be queried.",
                    )
                record_warning(warnings, warning, adapter.provider, log)
                continue
            if value is not None:
                break
        counts[table_key(schema, name)] = value

    log.info(
        "row_counts_collected",
        extra={
            "event": "row_counts_collected",
            "provider": adapter.provider,
            "tables": len(counts),
            "known": sum(1 for value in counts.values() if value is not None),
        },
    )
    return counts, warnings


def _profile_from_catalog(row: ProfileRow) -> ColumnProfile:
    distinct_count = None
    distinct_fraction = None
    # Negative n_distinct is minus the distinct fraction of rows.
    if row.n_distinct is not None:
        if row.n_distinct >= 0:
            distinct_count = int(row.n_distinct)
        else:
            distinct_fraction = -row.n_distinct
    return ColumnProfile(
        column=row.column_name,
        null_fraction=row.null_frac,
        distinct_count=distinct_count,
        distinct_fraction=distinct_fraction,
    )


def _profile_from_sample(column: str, row: SampleStatsRow) -> ColumnProfile:
    sampled = row.sampled_rows
    nulls = row.null_count or 0
    non_null = sampled - nulls
    return ColumnProfile(
        column=column,
        null_fraction=(nulls / sampled) if sampled else None,
        distinct_count=row.distinct_count,
        distinct_fraction=(
            row.distinct_count / non_null if row.distinct_count is not None and non_null else None
        ),
        min=row.min_value,
        max=row.max_value,
        sample_count=sampled,
    )


async def profile_tables(
    adapter: Any,
    tables: Optional[Sequence[Any]] = None,
    logger: Optional[logging.Logger] = None,
    settings: Optional[CrawlerSettings] = None,
) -> Tuple[List[TableProfile], List[CrawlWarning]]:
    """Collect column statistics.

    Sources with a statistics catalog are read with one bulk query; others
    are sampled. A permission failure yields an empty list and one warning;
    a sampled column whose query fails on its own is skipped with a warning.
    """
    log = logger or module_logger
    settings = settings or CrawlerSettings.from_env()
    if adapter.kind.is_document:
        return await _profile_collections(adapter, tables, log, settings)

    spec = adapter.introspection.profile
    if spec is None:
        return [], []
    if spec.bulk_query:
        return await _profile_bulk(adapter, spec, tables, log, settings)

    if tables is None:
        tables = (await crawl_schema(adapter, log, settings)).data.tables
    return await _profile_sampled(adapter, spec, tables, log, settings)


async def _profile_bulk(adapter, spec, tables, log, settings):
    probe = CapabilityProbe(
        adapter.provider, spec.feature, spec.message, spec.suggestion, logger=log
    )
    tier = QueryTier(feature=spec.feature, sql=spec.bulk_query, message=spec.message)
    outcome = await probe.run([query_tier(adapter, tier, ProfileRow, log)])
    wanted = None if tables is None else {table_key(*_identify(table)) for table in tables}

    grouped: "OrderedDict[str, TableProfile]" = OrderedDict()
    for row in outcome.value or []:
        if row.table_schema in settings.excluded_schemas:
            continue
        key = table_key(row.table_schema, row.table_name)
        if wanted is not None and key not in wanted:
            continue
        profile = grouped.get(key)
        if profile is None:
            profile = grouped[key] = TableProfile(
                schema_name=row.table_schema, name=row.table_name
            )
        profile.columns.append(_profile_from_catalog(row))
    return list(grouped.values()), outcome.warnings


async def _profile_sampled(adapter, spec, tables, log, settings):
    profiles: List[TableProfile] = []
    warnings: List[CrawlWarning] = []
    limit = settings.profile_sample_size
    for table in tables:
        schema, name = _identify(table)
        profile = TableProfile(schema_name=schema, name=name)
        for column in getattr(table, "columns", []):
            sql, params = spec.sample_query(schema, name, column.name, limit)
            try:
                rows = await adapter.fetch(sql, *params)
            except Exception as exc:
                info = emit_classified_error(adapter.provider, spec.feature, exc)
                if info.is_fatal:
                    raise
                if not info.is_capability_error:
                    record_warning(
                        warnings,
                        CrawlWarning(
                            level=WarningLevel.WARNING,
                            feature=spec.feature,
                            message=(
                                f"Cannot sample {table_key(schema, name)}.{column.name}; "
                                "its statistics are unavailable."
                            ),
                        ),
                        adapter.provider,
                        log,
                    )
                    continue
                record_warning(
                    warnings,
                    CrawlWarning(
                        level=WarningLevel.INFO,
                        feature=spec.feature,
                        message=spec.message,
                        suggestion=spec.suggestion,
                    ),
                    adapter.provider,
                    log,
                )
                return [], warnings
            parsed = parse_rows(rows, SampleStatsRow, adapter.provider, spec.feature, log)
            if parsed:
                profile.columns.append(_profile_from_sample(column.name, parsed[0]))
                profile.sampled_rows = max(profile.sampled_rows, parsed[0].sampled_rows)
        profiles.append(profile)
    return profiles, warnings


async def _profile_collections(adapter, collections, log, settings):
    names = (
        [_identify(item)[1] for item in collections]
        if collections is not None
        else await adapter.list_collections()
    )
    profiles: List[TableProfile] = []
    warnings: List[CrawlWarning] = []
    for name in names:
        try:
            documents = await adapter.aggregate(
                name, sample_pipeline(settings.profile_sample_size)
            )
        except Exception as exc:
            info = emit_classified_error(adapter.provider, "collection_profiling", exc)
            if info.is_fatal:
                raise
            record_warning(
                warnings,
                CrawlWarning(
                    level=WarningLevel.WARNING,
                    feature="collection_profiling",
                    message=f"Cannot profile collection {name}.",
                    suggestion=(
                        "Grant read permissions on this collection."
                        if info.is_capability_error
                        else None
                    ),
                ),
                adapter.provider,
                log,
            )
            profiles.append(TableProfile(schema_name=adapter.database, name=name))
            continue
        profiles.append(
            TableProfile(
                schema_name=adapter.database,
                name=name,
                columns=profile_documents(documents),
                sampled_rows=len(documents),
            )
        )
    return profiles, warnings
