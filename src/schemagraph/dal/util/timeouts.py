import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class QueryTimeoutError(TimeoutError):
    """An adapter call exceeded its bound. Always fatal for the crawl."""

    def __init__(
        self, provider: str, operation_name: str, timeout_seconds: Optional[float]
    ) -> None:
        """Initialize with the provider and the operation that timed out."""
        self.provider = provider
        self.operation_name = operation_name
        self.timeout_seconds = timeout_seconds
        if isinstance(timeout_seconds, (int, float)):
            bound = f"{float(timeout_seconds):g}s"
        else:
            bound = "an unknown bound"
        super().__init__(f"{provider} {operation_name} exceeded {bound}.")


async def _invoke_cancel(cancel: Callable[[], Any]) -> None:
    try:
        outcome = cancel()
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as exc:
        logger.warning(
            "timeout_cancel_failed",
            extra={"event": "timeout_cancel_failed", "error_type": exc.__class__.__name__},
        )


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float],
    cancel: Optional[Callable[[], Any]] = None,
    *,
    provider: str = "unknown",
    operation_name: str = "operation",
) -> T:
    """Await `operation()` within `timeout_seconds`; a falsy bound disables the limit.

    On expiry the optional `cancel` hook runs (sync or async) before
    QueryTimeoutError is raised.
    """
    if not timeout_seconds or timeout_seconds <= 0:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        if cancel is not None:
            await _invoke_cancel(cancel)
        raise QueryTimeoutError(provider, operation_name, timeout_seconds) from exc
