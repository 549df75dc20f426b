"""Serial background crawl queue with pending-set de-duplication."""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from pydantic import BaseModel

from schemagraph.common.sanitization import bounded_error_message

module_logger = logging.getLogger(__name__)

QUEUED = "queued"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class CrawlQueueStatus(BaseModel):
    status: str
    error: Optional[str] = None


StatusCallback = Callable[[str, CrawlQueueStatus], None]


def _ignore_status(source_id: str, status: CrawlQueueStatus) -> None:
    return None


class CrawlQueue:
    """Runs queued crawls one at a time.

    A source id can only be pending once; enqueueing it again while it is
    queued or running is a no-op. A single worker task drains the queue and is
    started on demand from within a running event loop.
    """

    def __init__(
        self,
        crawl_service,
        notify_status: Optional[StatusCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._service = crawl_service
        self._notify = notify_status or _ignore_status
        self._logger = logger or module_logger
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._pending: Set[str] = set()
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> List[str]:
        return sorted(self._pending)

    def enqueue(self, source_id: str) -> bool:
        """Queue a crawl; returns False when one is already pending for the source."""
        if source_id in self._pending:
            self._logger.info(
                "crawl_already_pending",
                extra={"event": "crawl_already_pending", "source_id": source_id},
            )
            return False
        self._pending.add(source_id)
        self._queue.put_nowait(source_id)
        self._notify(source_id, CrawlQueueStatus(status=QUEUED))
        self._ensure_worker()
        return True

    def enqueue_all(self, source_ids) -> int:
        return sum(1 for source_id in source_ids if self.enqueue(source_id))

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while not self._queue.empty():
            source_id = self._queue.get_nowait()
            try:
                await self._run_job(source_id)
            finally:
                self._pending.discard(source_id)
                self._queue.task_done()

    async def _run_job(self, source_id: str) -> None:
        self._notify(source_id, CrawlQueueStatus(status=RUNNING))
        try:
            await self._service.crawl_source(source_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error(
                "crawl_job_failed",
                extra={
                    "event": "crawl_job_failed",
                    "source_id": source_id,
                    "error_type": exc.__class__.__name__,
                },
            )
            self._notify(
                source_id, CrawlQueueStatus(status=FAILED, error=bounded_error_message(exc))
            )
            return
        self._notify(source_id, CrawlQueueStatus(status=COMPLETED))

    async def join(self) -> None:
        """Wait until every queued crawl has finished."""
        await self._queue.join()

    async def close(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
