from .adapter import DuckDBSourceAdapter

__all__ = ["DuckDBSourceAdapter"]
