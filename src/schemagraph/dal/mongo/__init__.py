from .adapter import MongoQuery, MongoSourceAdapter

__all__ = ["MongoQuery", "MongoSourceAdapter"]
