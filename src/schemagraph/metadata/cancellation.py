"""Cooperative crawl cancellation checked at every adapter call boundary."""

import logging
from typing import Any, Optional

from schemagraph.common.errors import CrawlCancelledError

logger = logging.getLogger(__name__)

# Adapter methods that reach the external source.
_GUARDED_CALLS = frozenset(
    {
        "connect",
        "fetch",
        "health_check",
        "list_collections",
        "aggregate",
        "estimated_document_count",
    }
)


class CancellationToken:
    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason
            logger.info(
                "crawl_cancel_requested",
                extra={
                    "event": "crawl_cancel_requested",
                    "source_id": self.source_id,
                    "reason": reason,
                },
            )

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise CrawlCancelledError(self.source_id, self._reason)


class CancellableAdapter:
    """Proxy that checks a token before every call into the wrapped adapter.

    Attribute reads (`kind`, `provider`, `introspection`, ...) pass through.
    """

    def __init__(self, adapter: Any, token: CancellationToken) -> None:
        self._adapter = adapter
        self._token = token

    @property
    def wrapped(self) -> Any:
        return self._adapter

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._adapter, name)
        if name not in _GUARDED_CALLS or not callable(attr):
            return attr
        token = self._token

        async def _guarded(*args, **kwargs):
            token.raise_if_cancelled()
            return await attr(*args, **kwargs)

        return _guarded

    async def close(self) -> None:
        await self._adapter.close()
