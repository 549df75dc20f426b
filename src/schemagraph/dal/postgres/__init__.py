from .adapter import PostgresSourceAdapter

__all__ = ["PostgresSourceAdapter"]
