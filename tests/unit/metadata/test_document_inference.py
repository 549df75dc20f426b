"""Unit tests for document field inference."""

import datetime

import pytest
from bson import Decimal128, Int64, ObjectId

from schemagraph.metadata.document_inference import bson_type_name, infer_fields, profile_documents
from schemagraph.schema.snapshot import MongoField


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "null"),
        (True, "bool"),
        (7, "int"),
        (2**40, "long"),
        (Int64(3), "long"),
        (1.5, "double"),
        ("x", "string"),
        (ObjectId(), "objectId"),
        (datetime.datetime(2024, 1, 1), "date"),
        (Decimal128("1.10"), "decimal"),
        (b"\x00", "binData"),
        ({"a": 1}, "object"),
        ([1], "array"),
    ],
)
def test_bson_type_name(value, expected):
    assert bson_type_name(value) == expected


def test_nested_documents_and_arrays_produce_paths():
    fields = infer_fields(
        [
            {"_id": 1, "address": {"city": "Oslo"}, "items": [{"sku": "a"}, {"sku": "b"}]},
            {"_id": 2, "address": {"city": None}, "items": []},
        ]
    )

    by_path = {f.path: f for f in fields}
    assert [f.path for f in fields] == sorted(by_path)
    assert set(by_path) == {"_id", "address", "address.city", "items", "items[]", "items[].sku"}
    assert by_path["address.city"].types == ["null", "string"]
    assert by_path["address.city"].nullable is True
    assert by_path["items"].is_array is True
    assert by_path["items[]"].types == ["object"]


def test_mixed_types_are_recorded():
    [field] = infer_fields([{"v": 1}, {"v": "one"}, {"v": 1.0}])

    assert field.types == ["double", "int", "string"]
    assert field.nullable is False


@pytest.mark.parametrize(
    "path, parent",
    [
        ("name", None),
        ("address.city", "address"),
        ("tags[]", "tags"),
        ("items[].sku", "items[]"),
        ("a.b.c", "a.b"),
    ],
)
def test_parent_path(path, parent):
    assert MongoField(path=path).parent_path == parent


def test_profile_documents_ranges_and_nulls():
    when = datetime.datetime(2024, 5, 1, 12, 0)
    profiles = profile_documents(
        [
            {"n": 3, "flag": True, "at": when, "mixed": 1},
            {"n": 1, "flag": False, "at": None, "mixed": "a"},
            {"n": 2, "tags": ["x", "x"]},
        ]
    )

    by_column = {p.column: p for p in profiles}
    assert (by_column["n"].min, by_column["n"].max) == (1, 3)
    assert by_column["n"].distinct_count == 3
    assert by_column["n"].null_fraction == 0.0
    assert by_column["flag"].min is None
    assert by_column["at"].min == when.isoformat()
    assert by_column["at"].null_fraction == pytest.approx(1 / 3)
    assert by_column["mixed"].min is None and by_column["mixed"].max is None
    assert by_column["tags[]"].distinct_count == 1
    assert by_column["tags[]"].sample_count == 2


def test_profile_of_no_documents_is_empty():
    assert profile_documents([]) == []
