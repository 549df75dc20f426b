"""Crawl warnings and capability flags returned alongside every crawl result."""

from __future__ import annotations

from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class WarningLevel(str, Enum):
    """Severity of a crawl warning."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class CrawlWarning(BaseModel):
    """A capability that could not be used. Warnings are returned, never raised."""

    level: WarningLevel
    feature: str
    message: str
    suggestion: Optional[str] = None


class AvailableFeatures(BaseModel):
    """Which capabilities succeeded during a crawl."""

    has_row_counts: bool = False
    has_statistics: bool = False
    has_comments: bool = False
    has_permission_errors: bool = False


class EnhancedResult(BaseModel, Generic[T]):
    """Crawl data paired with the warnings and capability flags that produced it."""

    data: T
    warnings: List[CrawlWarning] = Field(default_factory=list)
    available_features: AvailableFeatures = Field(default_factory=AvailableFeatures)
