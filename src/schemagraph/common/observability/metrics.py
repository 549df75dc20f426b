"""Crawl and ingestion instruments, emitted only when metrics are switched on.

A flag such as `CRAWL_METRICS_ENABLED` decides explicitly; when it is unset,
metrics follow whether an OTLP exporter endpoint is configured.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional, Tuple

from opentelemetry import metrics

from schemagraph.common.config.env import get_env_bool

logger = logging.getLogger(__name__)

_ENDPOINT_VARS = ("OTEL_EXPORTER_OTLP_ENDPOINT", "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")


def is_otel_exporter_configured() -> bool:
    """Return True when some OTLP endpoint is set and export is not switched off."""
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False
    if os.getenv("OTEL_METRICS_EXPORTER", "").strip().lower() == "none":
        return False
    return any(os.getenv(name, "").strip() for name in _ENDPOINT_VARS)


def is_metrics_enabled(flag_var: str) -> bool:
    """Resolve a feature flag, falling back to exporter configuration when unset."""
    if os.getenv(flag_var) is None:
        return is_otel_exporter_configured()
    try:
        return bool(get_env_bool(flag_var, False))
    except ValueError as exc:
        logger.warning(f"{exc} Metrics stay disabled.")
        return False


def _otel_attributes(attributes: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop None values and coerce the rest to OTEL attribute types."""
    coerced: Dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = str(value).lower()
        elif not isinstance(value, (str, int, float)):
            value = str(value)
        coerced[key] = value
    return coerced


class OptionalMetrics:
    """Instrument cache bound to one meter and one enable flag."""

    def __init__(self, meter_name: str, enabled_env_var: str) -> None:
        self.meter_name = meter_name
        self.enabled_env_var = enabled_env_var
        self._instruments: Dict[Tuple[str, str], Any] = {}

    @property
    def enabled(self) -> bool:
        return is_metrics_enabled(self.enabled_env_var)

    def _get(self, kind: str, name: str, description: str, unit: str):
        key = (kind, name)
        if key not in self._instruments:
            meter = metrics.get_meter(self.meter_name)
            create: Callable[..., Any] = (
                meter.create_counter if kind == "counter" else meter.create_histogram
            )
            self._instruments[key] = create(name=name, description=description, unit=unit)
        return self._instruments[key]

    def _emit(
        self,
        kind: str,
        name: str,
        value: Any,
        description: str,
        unit: str,
        attributes: Optional[Dict[str, Any]],
    ) -> None:
        if not self.enabled:
            return
        try:
            instrument = self._get(kind, name, description, unit)
            if kind == "counter":
                instrument.add(int(value), _otel_attributes(attributes))
            else:
                instrument.record(float(value), _otel_attributes(attributes))
        except Exception as exc:
            logger.debug(f"Dropped {kind} sample for {name}: {exc}")

    def add_counter(
        self,
        name: str,
        value: int = 1,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._emit("counter", name, value, description, unit, attributes)

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._emit("histogram", name, value, description, unit, attributes)


crawl_metrics = OptionalMetrics("schemagraph-crawler", "CRAWL_METRICS_ENABLED")
