"""Foreign-key discovery."""

import logging
from typing import Any, List, Optional, Tuple

from schemagraph.dal.introspection import ForeignKeyRow
from schemagraph.metadata.capability_probe import probe_from_spec, record_warning
from schemagraph.metadata.schema_crawler import query_tier
from schemagraph.schema.snapshot import ForeignKeyConstraint
from schemagraph.schema.warnings import CrawlWarning, WarningLevel

module_logger = logging.getLogger(__name__)


def _constraint(row: ForeignKeyRow) -> ForeignKeyConstraint:
    return ForeignKeyConstraint(
        constraint_name=row.constraint_name,
        source_schema=row.table_schema,
        source_table=row.table_name,
        source_column=row.column_name,
        target_schema=row.foreign_table_schema,
        target_table=row.foreign_table_name,
        target_column=row.foreign_column_name,
        update_rule=row.update_rule,
        delete_rule=row.delete_rule,
    )


async def get_foreign_keys(
    adapter: Any, logger: Optional[logging.Logger] = None
) -> Tuple[List[ForeignKeyConstraint], List[CrawlWarning]]:
    """Discover foreign keys, richest tier first.

    The reduced-privilege tier runs only when the richer tier is denied,
    unless the source accumulates every tier; a tier that answers with zero
    rows is a valid answer. Tiers may name the same constraint differently,
    so duplicates are detected by their columns. Document sources have no
    constraint catalog and always report an empty list.
    """
    log = logger or module_logger
    warnings: List[CrawlWarning] = []

    if adapter.kind.is_document:
        record_warning(
            warnings,
            CrawlWarning(
                level=WarningLevel.INFO,
                feature="foreign_keys",
                message="Document sources do not declare foreign keys.",
                suggestion="Document references between collections manually.",
            ),
            adapter.provider,
            log,
        )
        return [], warnings

    spec = adapter.introspection.foreign_keys
    probe = probe_from_spec(adapter.provider, spec, logger=log)
    outcome = await probe.run(
        [query_tier(adapter, tier, ForeignKeyRow, log) for tier in spec.tiers]
    )
    warnings.extend(outcome.warnings)

    foreign_keys: List[ForeignKeyConstraint] = []
    seen = set()
    for rows in outcome.results:
        for row in rows:
            constraint = _constraint(row)
            key = (
                constraint.source_key,
                constraint.source_column,
                constraint.target_key,
                constraint.target_column,
            )
            if key in seen:
                continue
            seen.add(key)
            foreign_keys.append(constraint)

    log.info(
        "foreign_keys_discovered",
        extra={
            "event": "foreign_keys_discovered",
            "provider": adapter.provider,
            "foreign_keys": len(foreign_keys),
            "tier": outcome.succeeded[0].feature if outcome.succeeded else None,
        },
    )
    return foreign_keys, warnings
