from schemagraph.common.config.settings import CrawlerSettings

__all__ = ["CrawlerSettings"]
