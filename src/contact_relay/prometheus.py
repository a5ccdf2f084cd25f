# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the contact relay.

Metrics exposed:
    - ``relay_sent_total``: Counter of delivered messages per direction.
    - ``relay_errors_total``: Counter of delivery failures per direction.
    - ``relay_rejected_total``: Counter of rejected messages per reason.
    - ``relay_archived_total``: Counter of archive copies written.
    - ``relay_rate_limited_total``: Counter of rate-limited requests.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest

DIRECT_LABEL = "direct"


class RelayMetrics:
    """Prometheus metrics collector for the relay.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create the counters inside ``registry`` or a fresh registry."""
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "relay_sent_total",
            "Total delivered messages",
            ["direction"],
            registry=self.registry,
        )
        self.errors = Counter(
            "relay_errors_total",
            "Total delivery failures",
            ["direction"],
            registry=self.registry,
        )
        self.rejected = Counter(
            "relay_rejected_total",
            "Total messages rejected before delivery",
            ["reason"],
            registry=self.registry,
        )
        self.archived = Counter(
            "relay_archived_total",
            "Total archive copies written",
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "relay_rate_limited_total",
            "Total rate limited requests",
            registry=self.registry,
        )

    def inc_sent(self, direction: str | None) -> None:
        self.sent.labels(direction=direction or DIRECT_LABEL).inc()

    def inc_error(self, direction: str | None) -> None:
        self.errors.labels(direction=direction or DIRECT_LABEL).inc()

    def inc_rejected(self, reason: str) -> None:
        self.rejected.labels(reason=reason).inc()

    def inc_archived(self) -> None:
        self.archived.inc()

    def inc_rate_limited(self) -> None:
        self.rate_limited.inc()

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
