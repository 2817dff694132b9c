"""Prometheus metrics for the CDC router."""

import threading
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class MetricsSink:
    """
    Counter families updated by the routing pipeline.

    All instruments are registered on one registry. prometheus_client guards
    each child with a lock, so increments from concurrent publish workers are
    never lost.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """
        Initialize metric families.

        Args:
            registry: Registry to register on (default: process-wide registry)
        """
        self.registry = registry if registry is not None else REGISTRY

        self.observed_events = Counter(
            "cdc_router_observed_events",
            "CDC events parsed from source topics",
            ["source_topic", "database", "table", "operation"],
            registry=self.registry,
        )
        self.forwarded_events = Counter(
            "cdc_router_forwarded_events",
            "CDC events successfully forwarded to a destination topic",
            ["destination_topic", "operation"],
            registry=self.registry,
        )
        self.parse_errors = Counter(
            "cdc_router_parse_errors",
            "Consumed records that could not be parsed as change events",
            ["source_topic", "reason"],
            registry=self.registry,
        )
        self.publish_errors = Counter(
            "cdc_router_publish_errors",
            "Forwards that failed or timed out",
            ["destination_topic", "error_type"],
            registry=self.registry,
        )
        self.consumer_reconnects = Counter(
            "cdc_router_consumer_reconnects",
            "Consumer reconnect attempts after poll failures",
            registry=self.registry,
        )
        self.inflight_publishes = Gauge(
            "cdc_router_inflight_publishes",
            "Publishes submitted but not yet completed",
            registry=self.registry,
        )
        self.publish_duration_seconds = Histogram(
            "cdc_router_publish_duration_seconds",
            "Time from publish submission to broker acknowledgement or failure",
            ["destination_topic"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0],
            registry=self.registry,
        )

    def record_observed(
        self, source_topic: str, database: str, table: str, operation: str
    ) -> None:
        """Count one successfully parsed record."""
        self.observed_events.labels(
            source_topic=source_topic, database=database, table=table, operation=operation
        ).inc()

    def record_forwarded(self, destination_topic: str, operation: str, duration: float) -> None:
        """
        Count one record acknowledged by the destination topic.

        Args:
            destination_topic: Topic the record was published to
            operation: Change operation name
            duration: Publish duration in seconds
        """
        self.forwarded_events.labels(
            destination_topic=destination_topic, operation=operation
        ).inc()
        self.publish_duration_seconds.labels(destination_topic=destination_topic).observe(
            duration
        )

    def record_parse_error(self, source_topic: str, reason: str) -> None:
        """Count one skipped record (empty/invalid_json/not_an_object/missing_field/unexpected)."""
        self.parse_errors.labels(source_topic=source_topic, reason=reason).inc()

    def record_publish_error(
        self, destination_topic: str, error_type: str, duration: float
    ) -> None:
        """
        Count one failed forward.

        Args:
            destination_topic: Topic the record was meant for
            error_type: Failure category (timeout/broker/unexpected)
            duration: Time spent before the failure in seconds
        """
        self.publish_errors.labels(
            destination_topic=destination_topic, error_type=error_type
        ).inc()
        self.publish_duration_seconds.labels(destination_topic=destination_topic).observe(
            duration
        )

    def record_reconnect(self) -> None:
        self.consumer_reconnects.inc()

    def publish_started(self) -> None:
        self.inflight_publishes.inc()

    def publish_finished(self) -> None:
        self.inflight_publishes.dec()

    def exposition(self) -> bytes:
        """Render all families in the Prometheus text format."""
        return generate_latest(self.registry)


_sink: Optional[MetricsSink] = None
_sink_lock = threading.Lock()


def get_metrics_sink() -> MetricsSink:
    """Return the process-wide metrics sink, creating it on first use."""
    global _sink
    with _sink_lock:
        if _sink is None:
            _sink = MetricsSink()
        return _sink
