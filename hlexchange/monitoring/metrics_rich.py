"""
Prometheus metrics for the action pipeline.

Organized into: submission, rejection, transport, metadata.
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server


class ExchangeMetrics:
    """Counters and latency histograms for signed action submissions."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()
        self.registry = reg

        # === Submission ===
        self.actions_submitted = Counter(
            'hl_actions_submitted_total',
            'Signed actions posted to /exchange',
            labelnames=['action_type', 'environment'],
            registry=reg
        )
        self.actions_confirmed = Counter(
            'hl_actions_confirmed_total',
            'Actions accepted by the venue',
            labelnames=['action_type', 'environment'],
            registry=reg
        )
        self.orders_rejected = Counter(
            'hl_orders_rejected_total',
            'Actions or orders rejected by the venue',
            labelnames=['action_type', 'reason'],
            registry=reg
        )
        self.preflight_failures = Counter(
            'hl_preflight_failures_total',
            'Pipeline failures before any network submission',
            labelnames=['kind'],
            registry=reg
        )
        self.submit_latency_ms = Histogram(
            'hl_submit_latency_ms',
            'Round trip of the /exchange POST (milliseconds)',
            labelnames=['action_type'],
            buckets=[10, 25, 50, 100, 200, 500, 1000, 2500, 5000],
            registry=reg
        )

        # === Transport ===
        self.transport_errors = Counter(
            'hl_transport_errors_total',
            'HTTP failures or unparsable bodies',
            labelnames=['endpoint'],
            registry=reg
        )

        # === Metadata ===
        self.meta_fetches = Counter(
            'hl_meta_fetches_total',
            'Universe metadata fetches (cache misses or refreshes)',
            labelnames=['market'],
            registry=reg
        )

    def record_meta_fetch(self, market: str) -> None:
        self.meta_fetches.labels(market=market).inc()

    def serve(self, port: int) -> None:
        """Expose /metrics on the given port (background thread)."""
        start_http_server(port, registry=self.registry)
