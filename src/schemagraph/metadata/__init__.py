"""Crawl pipeline: schema, relationships, statistics and orchestration."""

from schemagraph.metadata.crawl_queue import CrawlQueue, CrawlQueueStatus
from schemagraph.metadata.crawl_service import CrawlOutcome, MetadataCrawlService

__all__ = ["CrawlOutcome", "CrawlQueue", "CrawlQueueStatus", "MetadataCrawlService"]
