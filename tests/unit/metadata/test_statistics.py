"""Unit tests for row counts and column profiling."""

import pytest

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.metadata.statistics import get_row_counts, profile_tables
from schemagraph.schema.snapshot import MongoCollection, SchemaColumn, SchemaTable
from schemagraph.schema.warnings import WarningLevel
from tests._support.fakes import (
    COUNT_ESTIMATE,
    COUNT_LIVE,
    PROFILE_BULK,
    PROFILE_SAMPLE,
    TABLES_TIER1,
    BrokenConnectionError,
    DeniedError,
    FakeMongoAdapter,
    FakeSqlAdapter,
    accounts_adapter,
    make_introspection,
)

SETTINGS = CrawlerSettings()


def _table(name, *columns):
    return SchemaTable(
        schema_name="public",
        name=name,
        columns=[SchemaColumn(name=column, data_type="integer") for column in columns],
    )


@pytest.mark.asyncio
async def test_denied_strategy_is_not_retried_for_later_tables():
    adapter = FakeSqlAdapter(
        {
            COUNT_LIVE: DeniedError("pg_stat_user_tables"),
            COUNT_ESTIMATE: lambda schema, name: [{"row_count": {"t1": 10, "t2": 20}[name]}],
        }
    )

    counts, warnings = await get_row_counts(adapter, [("public", "t1"), ("public", "t2")])

    assert counts == {"public.t1": 10, "public.t2": 20}
    assert adapter.count_calls(COUNT_LIVE) == 1
    assert adapter.count_calls(COUNT_ESTIMATE) == 2
    assert [(w.level, w.feature) for w in warnings] == [
        (WarningLevel.INFO, "pg_stat_user_tables")
    ]


@pytest.mark.asyncio
async def test_missing_answer_falls_through_for_that_table_only():
    adapter = FakeSqlAdapter(
        {
            COUNT_LIVE: lambda schema, name: [] if name == "t1" else [{"row_count": 5}],
            COUNT_ESTIMATE: lambda schema, name: [{"row_count": 7}],
        }
    )

    counts, warnings = await get_row_counts(adapter, [_table("t1"), _table("t2")])

    assert counts == {"public.t1": 7, "public.t2": 5}
    assert warnings == []
    assert adapter.count_calls(COUNT_LIVE) == 2
    assert adapter.count_calls(COUNT_ESTIMATE) == 1


@pytest.mark.asyncio
async def test_unknown_counts_are_none_not_zero():
    adapter = FakeSqlAdapter(
        {COUNT_LIVE: DeniedError(), COUNT_ESTIMATE: lambda schema, name: [{"row_count": -1}]}
    )

    counts, _ = await get_row_counts(adapter, [("public", "t1")])

    assert counts == {"public.t1": None}


@pytest.mark.asyncio
async def test_row_count_connectivity_failure_propagates():
    adapter = FakeSqlAdapter({COUNT_LIVE: BrokenConnectionError()})

    with pytest.raises(BrokenConnectionError):
        await get_row_counts(adapter, [("public", "t1")])


@pytest.mark.asyncio
async def test_failing_table_falls_through_to_none_without_disabling_strategies():
    def conversion_failure(schema, name):
        if name == "broken_view":
            return Exception("Conversion Error: Could not convert string 'abc' to INT32")
        return [{"row_count": 5}]

    adapter = FakeSqlAdapter({COUNT_LIVE: conversion_failure, COUNT_ESTIMATE: conversion_failure})

    counts, warnings = await get_row_counts(
        adapter, [("public", "broken_view"), ("public", "orders")]
    )

    assert counts == {"public.broken_view": None, "public.orders": 5}
    assert adapter.count_calls(COUNT_LIVE) == 2
    assert [(w.level, w.feature) for w in warnings] == [
        (WarningLevel.WARNING, "pg_stat_user_tables"),
        (WarningLevel.WARNING, "pg_class.reltuples"),
    ]
    assert "public.broken_view" in warnings[0].message


@pytest.mark.asyncio
async def test_document_counts_fall_back_to_estimates():
    collections = [
        MongoCollection(database="shop", name="orders"),
        MongoCollection(database="shop", name="empty"),
    ]
    exact = FakeMongoAdapter({"orders": [{"_id": 1}, {"_id": 2}], "empty": []})

    counts, warnings = await get_row_counts(exact, collections)

    assert counts == {"shop.orders": 2, "shop.empty": 0}
    assert warnings == []

    estimated = FakeMongoAdapter(
        {"orders": [{"_id": 1}], "empty": []}, deny_counts=True, estimates={"orders": 40}
    )
    counts, warnings = await get_row_counts(estimated, collections)

    assert counts["shop.orders"] == 40
    assert [(w.level, w.feature) for w in warnings] == [(WarningLevel.INFO, "document_counts")]


@pytest.mark.asyncio
async def test_bulk_profile_converts_negative_distinct_to_fraction():
    adapter = FakeSqlAdapter(
        {
            PROFILE_BULK: [
                {
                    "table_schema": "public",
                    "table_name": "accounts",
                    "column_name": "email",
                    "null_frac": 0.25,
                    "n_distinct": -0.5,
                },
                {
                    "table_schema": "public",
                    "table_name": "accounts",
                    "column_name": "status",
                    "null_frac": 0.0,
                    "n_distinct": 3,
                },
            ]
        },
        introspection=make_introspection(bulk_profile=True),
    )

    profiles, warnings = await profile_tables(adapter, settings=SETTINGS)

    assert warnings == []
    [profile] = profiles
    email, status = profile.columns
    assert (email.null_fraction, email.distinct_fraction, email.distinct_count) == (
        0.25,
        0.5,
        None,
    )
    assert (status.distinct_count, status.distinct_fraction) == (3, None)


@pytest.mark.asyncio
async def test_bulk_profile_denied_returns_empty_with_warning():
    adapter = FakeSqlAdapter(
        {PROFILE_BULK: DeniedError("pg_stats")}, introspection=make_introspection(True)
    )

    profiles, warnings = await profile_tables(adapter, [("public", "accounts")], settings=SETTINGS)

    assert profiles == []
    assert [(w.level, w.feature) for w in warnings] == [(WarningLevel.INFO, "pg_stats")]


@pytest.mark.asyncio
async def test_sampled_profile_computes_fractions():
    adapter = FakeSqlAdapter(
        {
            PROFILE_SAMPLE: lambda schema, table, column, limit: [
                {
                    "sampled_rows": 10,
                    "null_count": 2,
                    "distinct_count": 4,
                    "min_value": "1",
                    "max_value": "9",
                }
            ]
        }
    )

    profiles, warnings = await profile_tables(
        adapter, [_table("orders", "id")], settings=CrawlerSettings(profile_sample_size=50)
    )

    assert warnings == []
    [column] = profiles[0].columns
    assert column.null_fraction == 0.2
    assert column.distinct_fraction == 0.5
    assert (column.min, column.max, column.sample_count) == ("1", "9", 10)
    assert adapter.calls[0][1] == ("public", "orders", "id", 50)


@pytest.mark.asyncio
async def test_sampled_profile_failure_returns_empty_list():
    adapter = FakeSqlAdapter({PROFILE_SAMPLE: DeniedError("orders")})

    profiles, warnings = await profile_tables(
        adapter, [_table("orders", "id", "total"), _table("lines", "id")], settings=SETTINGS
    )

    assert profiles == []
    assert len(warnings) == 1
    assert warnings[0].level is WarningLevel.INFO
    assert adapter.count_calls(PROFILE_SAMPLE) == 1


@pytest.mark.asyncio
async def test_sampled_column_that_fails_is_skipped_with_a_warning():
    def sample(schema, table, column, limit):
        if column == "score":
            return Exception("Conversion Error: Could not convert string 'abc' to INT32")
        return [{"sampled_rows": 4, "null_count": 1, "distinct_count": 3}]

    adapter = FakeSqlAdapter({PROFILE_SAMPLE: sample})

    profiles, warnings = await profile_tables(
        adapter, [_table("orders", "id", "score", "total")], settings=SETTINGS
    )

    assert [c.column for c in profiles[0].columns] == ["id", "total"]
    assert profiles[0].sampled_rows == 4
    assert [(w.level, w.feature) for w in warnings] == [
        (WarningLevel.WARNING, "column_sampling")
    ]
    assert "public.orders.score" in warnings[0].message


@pytest.mark.asyncio
async def test_sampled_profile_connectivity_failure_propagates():
    adapter = FakeSqlAdapter({PROFILE_SAMPLE: BrokenConnectionError()})

    with pytest.raises(BrokenConnectionError):
        await profile_tables(adapter, [_table("orders", "id")], settings=SETTINGS)


@pytest.mark.asyncio
async def test_sampled_profile_crawls_tables_when_none_given():
    adapter = accounts_adapter(
        **{PROFILE_SAMPLE: lambda *params: [{"sampled_rows": 0, "null_count": 0}]}
    )

    profiles, _ = await profile_tables(adapter, settings=SETTINGS)

    assert adapter.count_calls(TABLES_TIER1) == 1
    assert [p.key for p in profiles] == ["public.accounts"]
    assert [c.column for c in profiles[0].columns] == ["id", "email"]
    assert profiles[0].columns[0].null_fraction is None


@pytest.mark.asyncio
async def test_collection_profiling_denied_yields_empty_profile():
    adapter = FakeMongoAdapter(
        {"orders": [{"_id": 1, "total": 3}, {"_id": 2, "total": None}], "secrets": [{}]},
        denied={"secrets"},
    )

    profiles, warnings = await profile_tables(adapter, settings=SETTINGS)

    orders, secrets = profiles
    assert orders.sampled_rows == 2
    total = {c.column: c for c in orders.columns}["total"]
    assert total.null_fraction == 0.5
    assert (total.min, total.max) == (3, 3)
    assert secrets.columns == []
    assert [(w.level, w.feature) for w in warnings] == [
        (WarningLevel.WARNING, "collection_profiling")
    ]
