"""Pytest configuration and shared fixtures for CDC router tests."""

import pytest
from prometheus_client import CollectorRegistry

from cdc_router.common.config import PipelineConfig
from cdc_router.observability.metrics import MetricsSink
from cdc_router.pipeline.router import CDCRouterPipeline
from cdc_router.routing.table import RoutingTable
from tests.fakes import ORDERS_RULES, FakeProducer


@pytest.fixture
def registry():
    """Private Prometheus registry so counts start at zero in every test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MetricsSink(registry=registry)


@pytest.fixture
def producer():
    return FakeProducer()


@pytest.fixture
def make_pipeline(metrics, producer):
    """Build a pipeline over fake Kafka clients."""

    def _make(consumers, rules=None, **overrides):
        config_values = {
            "max_in_flight": 4,
            "publish_timeout_seconds": 2.0,
            "reconnect_max_attempts": 2,
            "reconnect_initial_delay_seconds": 0.0,
        }
        config_values.update(overrides)
        queue = list(consumers)

        def factory():
            item = queue.pop(0) if len(queue) > 1 else queue[0]
            if isinstance(item, Exception):
                raise item
            return item

        return CDCRouterPipeline(
            routing_table=RoutingTable.load(ORDERS_RULES if rules is None else rules),
            consumer_factory=factory,
            producer=producer,
            metrics=metrics,
            config=PipelineConfig(**config_values),
            sleep=lambda seconds: None,
        )

    return _make


@pytest.fixture
def routing_file(tmp_path):
    """Write a routing file and return its path."""

    def _write(text: str):
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write
