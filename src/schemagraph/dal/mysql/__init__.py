from .adapter import MysqlSourceAdapter

__all__ = ["MysqlSourceAdapter"]
