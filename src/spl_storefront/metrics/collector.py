"""Metrics collector: Prometheus counters and histograms.

- ``storefront_status_transitions_total`` counter (to_status)
- ``storefront_webhook_events_total`` counter (event_type, outcome)
- ``storefront_token_transfers_total`` counter (outcome)
- ``storefront_token_transfer_duration_seconds`` histogram
- ``storefront_reconcile_repaired_total`` counter
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIX = "storefront"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`EngineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class EngineMetrics:
    """Storefront business metrics."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._transitions = self._collector.counter(
            f"{_PREFIX}_status_transitions",
            "Transaction status transitions applied",
            ("to_status",),
        )
        self._webhooks = self._collector.counter(
            f"{_PREFIX}_webhook_events",
            "Stripe webhook deliveries by type and handler outcome",
            ("event_type", "outcome"),
        )
        self._transfers = self._collector.counter(
            f"{_PREFIX}_token_transfers",
            "Automated SPL token transfers by outcome",
            ("outcome",),
        )
        self._transfer_duration = self._collector.histogram(
            f"{_PREFIX}_token_transfer_duration_seconds",
            "Duration of automated token transfers, submission through confirmation",
        )
        self._repaired = self._collector.counter(
            f"{_PREFIX}_reconcile_repaired",
            "Transactions changed by the status repair pass",
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    def record_transition(self, to_status: str) -> None:
        self._transitions.labels(to_status=str(to_status)).inc()

    def record_webhook(self, event_type: str, outcome: str) -> None:
        self._webhooks.labels(event_type=event_type, outcome=outcome).inc()

    def record_transfer(self, outcome: str) -> None:
        self._transfers.labels(outcome=outcome).inc()

    def record_repaired(self, count: int) -> None:
        if count:
            self._repaired.inc(count)

    @contextmanager
    def track_transfer(self) -> Iterator[None]:
        """Track the duration of a token transfer."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._transfer_duration.observe(time.monotonic() - start)
