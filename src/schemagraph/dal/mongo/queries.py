"""Aggregation pipelines and document-count strategies for MongoDB sources."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

COUNT_PIPELINE: List[Dict[str, Any]] = [{"$count": "count"}]


def sample_pipeline(size: int) -> List[Dict[str, Any]]:
    """Return a `$sample` pipeline drawing `size` random documents."""
    return [{"$sample": {"size": int(size)}}]


@dataclass(frozen=True)
class DocumentCountStrategy:
    """One document-count source, queried per collection."""

    feature: str
    message: str
    suggestion: Optional[str]
    exact: bool = True

    async def count(self, adapter: Any, database: str, name: str) -> Optional[int]:
        """Return the count for one collection, or None when the server reports nothing."""
        if self.exact:
            rows = await adapter.aggregate(name, COUNT_PIPELINE)
            # $count emits no document for an empty collection.
            if not rows:
                return 0
            value = rows[0].get("count")
        else:
            value = await adapter.estimated_document_count(name)
        if value is None:
            return None
        count = int(value)
        return count if count >= 0 else None


MONGO_ROW_COUNTS = (
    DocumentCountStrategy(
        feature="document_counts",
        message="Cannot count documents. Falling back to collection metadata estimates.",
        suggestion="Grant read permissions on this collection.",
    ),
    DocumentCountStrategy(
        feature="estimated_document_count",
        message="Cannot read collection metadata counts. Document counts unavailable.",
        suggestion="Grant the collStats action on the crawled collections.",
        exact=False,
    ),
)
