"""Field inference and field statistics over sampled MongoDB documents.

Paths use dots for embedded documents (`address.city`) and a `[]` suffix
for array elements (`tags[]`, `items[].sku`).
"""

import datetime
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from bson import Binary, Decimal128, Int64, ObjectId

from schemagraph.schema.snapshot import MongoField
from schemagraph.schema.statistics import ColumnProfile

_INT32_MAX = 2**31 - 1


def bson_type_name(value: Any) -> str:
    """Return the BSON type alias (as used by `$type`) for a decoded value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, Int64):
        return "long"
    if isinstance(value, int):
        return "int" if -_INT32_MAX - 1 <= value <= _INT32_MAX else "long"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, ObjectId):
        return "objectId"
    if isinstance(value, datetime.datetime):
        return "date"
    if isinstance(value, Decimal128):
        return "decimal"
    if isinstance(value, (bytes, Binary)):
        return "binData"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


@dataclass
class _FieldAccumulator:
    types: Set[str] = field(default_factory=set)
    observed: int = 0
    nullable: bool = False


def _merge(accumulators: Dict[str, _FieldAccumulator], path: str, value: Any) -> None:
    entry = accumulators.setdefault(path, _FieldAccumulator())
    entry.observed += 1
    type_name = bson_type_name(value)
    entry.types.add(type_name)
    if value is None:
        entry.nullable = True

    if type_name == "object":
        for key, nested in value.items():
            _merge(accumulators, f"{path}.{key}", nested)
    elif type_name == "array":
        for element in value:
            _merge(accumulators, f"{path}[]", element)


def infer_fields(documents: List[Mapping[str, Any]]) -> List[MongoField]:
    """Infer field paths from sampled documents, sorted by path.

    A field is nullable when a null was observed or when some sampled
    document lacks it.
    """
    accumulators: Dict[str, _FieldAccumulator] = {}
    for document in documents:
        for key, value in document.items():
            _merge(accumulators, key, value)

    fields = [
        MongoField(
            path=path,
            types=sorted(entry.types),
            nullable=entry.nullable or entry.observed < len(documents),
            is_array="array" in entry.types,
        )
        for path, entry in accumulators.items()
    ]
    fields.sort(key=lambda item: item.path)
    return fields


@dataclass
class _FieldStats:
    nulls: int = 0
    count: int = 0
    distinct: Set[str] = field(default_factory=set)
    min: Optional[Any] = None
    max: Optional[Any] = None
    ordered: bool = True

    def observe(self, value: Any) -> None:
        self.count += 1
        if value is None:
            self.nulls += 1
            return
        self.distinct.add(json.dumps(value, sort_keys=True, default=str))
        if not self.ordered or isinstance(value, bool):
            return
        if isinstance(value, (int, float, str, datetime.datetime)):
            try:
                if self.min is None or value < self.min:
                    self.min = value
                if self.max is None or value > self.max:
                    self.max = value
            except TypeError:
                # Mixed scalar types have no common order.
                self.ordered = False
                self.min = self.max = None


def _collect(stats: Dict[str, _FieldStats], document: Mapping[str, Any], parent: str = "") -> None:
    for key, value in document.items():
        path = f"{parent}.{key}" if parent else key
        stats.setdefault(path, _FieldStats()).observe(value)
        if isinstance(value, Mapping):
            _collect(stats, value, path)
        elif isinstance(value, (list, tuple)):
            array_path = f"{path}[]"
            array_stats = stats.setdefault(array_path, _FieldStats())
            for element in value:
                array_stats.observe(element)
                if isinstance(element, Mapping):
                    _collect(stats, element, array_path)


def profile_documents(documents: Iterable[Mapping[str, Any]]) -> List[ColumnProfile]:
    """Compute per-path null fraction, distinct count and range over sampled documents."""
    stats: Dict[str, _FieldStats] = {}
    sampled = 0
    for document in documents:
        sampled += 1
        _collect(stats, document)

    profiles = []
    for path in sorted(stats):
        entry = stats[path]
        profiles.append(
            ColumnProfile(
                column=path,
                null_fraction=(entry.nulls / sampled) if sampled else None,
                distinct_count=len(entry.distinct),
                distinct_fraction=(len(entry.distinct) / entry.count) if entry.count else None,
                min=_jsonable(entry.min),
                max=_jsonable(entry.max),
                sample_count=entry.count,
            )
        )
    return profiles


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    return value
