from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class NodeType(str, Enum):
    """Node type tags."""

    SOURCE = "source"
    TABLE = "table"
    COLUMN = "column"
    COLLECTION = "collection"
    FIELD = "field"


class EdgeType(str, Enum):
    """Structural and relational edge types written by ingestion."""

    CONTAINS = "CONTAINS"
    HAS_COLUMN = "HAS_COLUMN"
    HAS_FIELD = "HAS_FIELD"
    BELONGS_TO = "BELONGS_TO"
    FOREIGN_KEY = "FOREIGN_KEY"


STRUCTURAL_EDGE_TYPES = frozenset(edge_type.value for edge_type in EdgeType)


class GraphNode(BaseModel):
    """Canonical graph node.

    Attributes:
        id: Deterministic identifier derived from the owning source and entity path.
        type: One of the NodeType values.
        props: Property bag; replaced wholesale on every upsert.
        owner_ids: First entry is the owning source id for crawled entities.
    """

    id: str
    type: str
    props: Dict[str, Any] = Field(default_factory=dict)
    owner_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    sensitivity: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class GraphEdge(BaseModel):
    """Canonical graph edge; identity is unique per (src_id, dst_id, type)."""

    id: str
    src_id: str
    dst_id: str
    type: str
    props: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class GraphFilter(BaseModel):
    """Read filter for get_graph. Empty lists mean no restriction."""

    source_ids: List[str] = Field(default_factory=list)
    node_types: List[str] = Field(default_factory=list)
    edge_types: List[str] = Field(default_factory=list)
    include_edges: bool = True


class GraphStats(BaseModel):
    node_count: int = 0
    edge_count: int = 0


class GraphData(BaseModel):
    """Result of a graph read."""

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    stats: GraphStats = Field(default_factory=GraphStats)


class DeleteCounts(BaseModel):
    """Rows removed per table by a cascading source delete."""

    embeddings: int = 0
    provenance: int = 0
    semantic_edges: int = 0
    edges: int = 0
    nodes: int = 0
    source_nodes: int = 0
    changelog: int = 0
    sources: int = 0

    @property
    def total(self) -> int:
        return sum(self.model_dump().values())
