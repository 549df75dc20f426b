"""Process-wide crawler settings loaded from the environment."""

from dataclasses import dataclass
from typing import List

from schemagraph.common.config.env import get_env_bool, get_env_int, get_env_list, get_env_str


@dataclass(frozen=True)
class CrawlerSettings:
    """Bounds and defaults shared by every crawl and by the graph store."""

    graph_db_path: str = "schemagraph.db"
    busy_timeout_seconds: int = 5
    connect_timeout_seconds: int = 5
    query_timeout_seconds: int = 30
    max_rows: int = 100_000
    mongo_sample_size: int = 200
    profile_sample_size: int = 1_000
    prune_stale: bool = True
    excluded_schemas: tuple = ()

    @classmethod
    def from_env(cls) -> "CrawlerSettings":
        """Load crawler settings from environment variables."""
        excluded: List[str] = get_env_list("CRAWL_EXCLUDED_SCHEMAS", []) or []
        return cls(
            graph_db_path=get_env_str("SCHEMAGRAPH_DB_PATH", "schemagraph.db"),
            busy_timeout_seconds=get_env_int("SCHEMAGRAPH_BUSY_TIMEOUT_SECS", 5),
            connect_timeout_seconds=get_env_int("CRAWL_CONNECT_TIMEOUT_SECS", 5),
            query_timeout_seconds=get_env_int("CRAWL_QUERY_TIMEOUT_SECS", 30),
            max_rows=get_env_int("CRAWL_MAX_ROWS", 100_000),
            mongo_sample_size=get_env_int("CRAWL_MONGO_SAMPLE_SIZE", 200),
            profile_sample_size=get_env_int("CRAWL_PROFILE_SAMPLE_SIZE", 1_000),
            prune_stale=get_env_bool("CRAWL_PRUNE_STALE", True),
            excluded_schemas=tuple(excluded),
        )

    def __post_init__(self) -> None:
        if self.query_timeout_seconds <= 0:
            raise ValueError("query_timeout_seconds must be positive.")
        if self.connect_timeout_seconds <= 0:
            raise ValueError("connect_timeout_seconds must be positive.")
        if self.mongo_sample_size <= 0 or self.profile_sample_size <= 0:
            raise ValueError("Sample sizes must be positive.")
