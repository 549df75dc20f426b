from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from schemagraph.common.config.env import get_env_bool
from schemagraph.common.errors import CrawlCancelledError
from schemagraph.dal.util.read_only import ReadOnlyViolationError

logger = logging.getLogger(__name__)

# Categories that mean "this introspection surface is not available to us".
CAPABILITY_CATEGORIES = frozenset({"auth", "unsupported"})
# Categories that end the crawl: the session is gone or must not continue.
FATAL_CATEGORIES = frozenset({"connectivity", "timeout", "cancelled", "mutation_blocked"})

# MySQL server error codes for denied privileges.
_MYSQL_DENIED_CODES = frozenset({1044, 1142, 1143, 1227, 1370, 3879})
# MongoDB server error codes for denied actions.
_MONGO_DENIED_CODES = frozenset({13, 8000})
_MONGO_UNSUPPORTED_CODES = frozenset({115, 40324})


@dataclass(frozen=True)
class ErrorClassification:
    """Structured provider-aware error classification."""

    category: str
    provider: str
    is_retryable: bool
    retry_after_seconds: Optional[float] = None

    @property
    def is_capability_error(self) -> bool:
        return self.category in CAPABILITY_CATEGORIES

    @property
    def is_fatal(self) -> bool:
        return self.category in FATAL_CATEGORIES


def classify_error(provider: str, exc: Exception) -> str:
    """Classify an error into a provider-agnostic category."""
    return classify_error_info(provider, exc).category


def classify_error_info(provider: str, exc: Exception) -> ErrorClassification:
    """Classify an error into a provider-aware category with retryability."""
    message = str(exc).lower()
    class_name = exc.__class__.__name__.lower()
    module_name = exc.__class__.__module__.lower()
    provider = (provider or "unknown").lower()
    retry_after = _extract_retry_after_seconds(message)

    if isinstance(exc, CrawlCancelledError):
        return _classification("cancelled", provider, retry_after)
    if isinstance(exc, ReadOnlyViolationError):
        return _classification("mutation_blocked", provider, retry_after)

    driver_category = _driver_category(provider, exc, class_name, module_name)
    if driver_category:
        return _classification(driver_category, provider, retry_after)

    if isinstance(exc, TimeoutError) or _matches_any(message, ("timeout", "timed out")):
        return _classification("timeout", provider, retry_after)
    if _matches_any(
        message,
        (
            "could not connect",
            "connection refused",
            "connection reset",
            "connection closed",
            "network",
            "dns",
            "connection failed",
            "server selection",
            "can't connect",
        ),
    ):
        return _classification("connectivity", provider, retry_after)
    if _matches_any(
        message,
        (
            "permission denied",
            "not authorized",
            "access denied",
            "unauthorized",
            "insufficient privileges",
            "command denied",
        ),
    ):
        return _classification("auth", provider, retry_after)
    if _matches_any(message, ("syntax error", "parse error", "invalid query")):
        return _classification("syntax", provider, retry_after)
    if _matches_any(message, ("not supported", "unsupported", "feature not supported")):
        return _classification("unsupported", provider, retry_after)

    if provider == "postgres":
        if _matches_any(message, ("deadlock detected",)):
            return _classification("deadlock", provider, retry_after)
        if _matches_any(message, ("serialization failure", "could not serialize")):
            return _classification("serialization", provider, retry_after)

    if _matches_any(message, ("too many requests", "rate limit", "throttling")):
        return _classification("throttling", provider, retry_after)
    if _matches_any(message, ("disk full", "out of memory", "resource limit", "disk is full")):
        return _classification("resource_exhausted", provider, retry_after)

    if class_name in {"timeout", "timeouterror", "networktimeout"}:
        return _classification("timeout", provider, retry_after)
    if class_name in {"connectionerror", "operationalerror", "autoreconnect"}:
        return _classification("connectivity", provider, retry_after)

    return _classification("unknown", provider, retry_after)


def _driver_category(
    provider: str, exc: Exception, class_name: str, module_name: str
) -> Optional[str]:
    if module_name.startswith("asyncpg"):
        if "insufficientprivilege" in class_name or "invalidauthorization" in class_name:
            return "auth"
        if "featurenotsupported" in class_name:
            return "unsupported"
        if "syntax" in class_name:
            return "syntax"
        if "invalidpassword" in class_name:
            return "connectivity"

    if module_name.startswith("pymysql") or provider == "mysql":
        code = _first_int_arg(exc)
        if code in _MYSQL_DENIED_CODES:
            return "auth"
        if code == 1064:
            return "syntax"
        if code in {2002, 2003, 2006, 2013}:
            return "connectivity"

    if module_name.startswith("pymongo"):
        code = getattr(exc, "code", None)
        if code in _MONGO_DENIED_CODES:
            return "auth"
        if code in _MONGO_UNSUPPORTED_CODES:
            return "unsupported"
        if class_name in {"serverselectiontimeouterror", "autoreconnect", "connectionfailure"}:
            return "connectivity"

    # Current releases raise from the compiled `_duckdb` module.
    if module_name.startswith(("duckdb", "_duckdb")) or provider == "duckdb":
        if "permissionexception" in class_name:
            return "auth"
        # Catalog functions and columns differ between DuckDB releases.
        if class_name in {"notimplementedexception", "catalogexception", "binderexception"}:
            return "unsupported"
        if "ioexception" in class_name:
            return "connectivity"
    return None


def _first_int_arg(exc: Exception) -> Optional[int]:
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


RECOVERY_HINTS: dict[str, str] = {
    "timeout": "Increase CRAWL_QUERY_TIMEOUT_SECS or check source load",
    "connectivity": "Check network configuration and source availability",
    "auth": "Grant SELECT on the catalog views used for introspection",
    "syntax": "The introspection query is not valid for this server version",
    "unsupported": "This introspection surface is not available on this source",
    "deadlock": "Retry the crawl",
    "serialization": "Retry the crawl",
    "throttling": "Reduce crawl frequency or wait for retry_after duration",
    "resource_exhausted": "Reduce CRAWL_MAX_ROWS or sample sizes",
    "transient": "Retry the crawl after a short delay",
    "cancelled": "The crawl was cancelled by a concurrent source deletion",
    "mutation_blocked": "Crawl connections only accept read-only statements",
    "unknown": "Inspect error details for root cause",
}


def emit_classified_error(provider: str, operation: str, exc: Exception) -> ErrorClassification:
    """Log and annotate the current span with a classified error; returns the classification."""
    info = classify_error_info(provider, exc)
    if not get_env_bool("DAL_CLASSIFIED_ERROR_TELEMETRY", True):
        return info

    recovery_hint = RECOVERY_HINTS.get(info.category, RECOVERY_HINTS["unknown"])
    from opentelemetry import trace

    span = trace.get_current_span()
    if span and span.is_recording():
        span.set_attribute("error.classification.category", info.category)
        span.set_attribute("error.classification.provider", provider)
        span.set_attribute("error.classification.operation", operation)
        span.set_attribute("error.classification.is_retryable", info.is_retryable)
        span.add_event(
            "dal.error.classified",
            {
                "provider": provider,
                "category": info.category,
                "operation": operation,
                "recovery_hint": recovery_hint,
            },
        )

    log_method = logger.info if info.is_capability_error else logger.error
    log_method(
        "dal_error_classified",
        extra={
            "event": "dal_error_classified",
            "provider": provider,
            "operation": operation,
            "error_category": info.category,
            "error_type": exc.__class__.__name__,
            "is_retryable": info.is_retryable,
            "recovery_hint": recovery_hint,
        },
    )
    return info


def _matches_any(text: str, fragments: tuple[str, ...]) -> bool:
    return any(fragment in text for fragment in fragments)


def _classification(
    category: str, provider: str, retry_after: Optional[float]
) -> ErrorClassification:
    retryable = category in {
        "timeout",
        "connectivity",
        "throttling",
        "resource_exhausted",
        "serialization",
        "deadlock",
        "transient",
    }
    return ErrorClassification(
        category=category,
        provider=provider,
        is_retryable=retryable,
        retry_after_seconds=retry_after,
    )


def _extract_retry_after_seconds(message: str) -> Optional[float]:
    match = re.search(r"retry after\s+(\d+(?:\.\d+)?)", message)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None
