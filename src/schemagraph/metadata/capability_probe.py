"""Tiered capability probing.

A probe runs introspection tiers ordered most-privileged first. A tier that
fails because the surface is denied or unsupported becomes a `CrawlWarning`
and the probe falls through to the next tier; any other error is fatal and
propagates to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from schemagraph.common.observability.metrics import crawl_metrics
from schemagraph.dal.error_classification import emit_classified_error
from schemagraph.schema.warnings import CrawlWarning, WarningLevel

T = TypeVar("T")

module_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeTier(Generic[T]):
    """One way of obtaining a capability; `run` issues the tier's adapter calls."""

    feature: str
    run: Callable[[], Awaitable[T]]
    message: str
    suggestion: Optional[str] = None
    provides_comments: bool = False


@dataclass
class ProbeOutcome(Generic[T]):
    results: List[T] = field(default_factory=list)
    succeeded: List[ProbeTier] = field(default_factory=list)
    warnings: List[CrawlWarning] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.succeeded)

    @property
    def value(self) -> Optional[T]:
        """Return the first successful tier's result."""
        return self.results[0] if self.results else None

    @property
    def provides_comments(self) -> bool:
        return any(tier.provides_comments for tier in self.succeeded)


def record_warning(
    warnings: List[CrawlWarning],
    warning: CrawlWarning,
    provider: str,
    log: Optional[logging.Logger] = None,
) -> CrawlWarning:
    """Append a warning, log it and count it."""
    warnings.append(warning)
    (log or module_logger).log(
        logging.WARNING if warning.level is WarningLevel.WARNING else logging.INFO,
        "crawl_warning_recorded",
        extra={
            "event": "crawl_warning_recorded",
            "provider": provider,
            "feature": warning.feature,
            "level": warning.level.value,
        },
    )
    crawl_metrics.add_counter(
        "schemagraph.crawl.warnings_total",
        attributes={"provider": provider, "feature": warning.feature, "level": warning.level.value},
        description="Crawl capabilities that degraded to a warning",
    )
    return warning


class CapabilityProbe:
    """Run tiers for one capability, degrading tier by tier on permission failures.

    In the default mode the probe stops at the first successful tier. With
    `accumulate=True` every tier runs and each success contributes a result.
    The first failure is reported at `warning` level and later ones at
    `info`. When no tier succeeds the last failure is replaced by one `info`
    warning naming the capability as unavailable.
    """

    def __init__(
        self,
        provider: str,
        capability: str,
        unavailable_message: str,
        unavailable_suggestion: Optional[str] = None,
        *,
        accumulate: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.provider = provider
        self.capability = capability
        self.unavailable_message = unavailable_message
        self.unavailable_suggestion = unavailable_suggestion
        self.accumulate = accumulate
        self._logger = logger or module_logger

    async def run(self, tiers: Sequence[ProbeTier[T]]) -> ProbeOutcome[T]:
        outcome: ProbeOutcome[T] = ProbeOutcome()
        failures = 0
        for index, tier in enumerate(tiers):
            try:
                result = await tier.run()
            except Exception as exc:
                info = emit_classified_error(self.provider, tier.feature, exc)
                if not info.is_capability_error:
                    raise
                failures += 1
                self._logger.info(
                    "crawl_tier_denied",
                    extra={
                        "event": "crawl_tier_denied",
                        "provider": self.provider,
                        "capability": self.capability,
                        "feature": tier.feature,
                        "error_category": info.category,
                    },
                )
                is_last = index == len(tiers) - 1
                if is_last and not outcome.available:
                    break
                record_warning(
                    outcome.warnings,
                    CrawlWarning(
                        level=WarningLevel.WARNING if failures == 1 else WarningLevel.INFO,
                        feature=tier.feature,
                        message=tier.message,
                        suggestion=tier.suggestion,
                    ),
                    self.provider,
                    self._logger,
                )
                continue

            outcome.results.append(result)
            outcome.succeeded.append(tier)
            if not self.accumulate:
                break

        if tiers and not outcome.available:
            self._logger.warning(
                "crawl_capability_unavailable",
                extra={
                    "event": "crawl_capability_unavailable",
                    "provider": self.provider,
                    "capability": self.capability,
                },
            )
            record_warning(
                outcome.warnings,
                CrawlWarning(
                    level=WarningLevel.INFO,
                    feature=self.capability,
                    message=self.unavailable_message,
                    suggestion=self.unavailable_suggestion,
                ),
                self.provider,
                self._logger,
            )
        return outcome


def probe_from_spec(
    provider: str, spec: Any, *, logger: Optional[logging.Logger] = None
) -> CapabilityProbe:
    """Build a probe for a `ProbeSpec` published by a relational adapter."""
    return CapabilityProbe(
        provider,
        spec.capability,
        spec.unavailable_message,
        spec.unavailable_suggestion,
        accumulate=spec.accumulate,
        logger=logger,
    )
