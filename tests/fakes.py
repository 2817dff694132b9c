"""
In-memory Kafka fakes and payload builders for router tests.

The fakes follow kafka-python's API: ``poll()`` returns
``{partition: [records]}`` and ``send()`` returns a future whose
``get(timeout)`` raises ``KafkaTimeoutError`` when the timeout elapses.
"""

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from kafka.errors import KafkaTimeoutError


@dataclass
class FakeRecord:
    """Stand-in for kafka.consumer.fetcher.ConsumerRecord."""

    topic: str
    partition: int
    offset: int
    key: Optional[bytes]
    value: Optional[bytes]


class FakeSendFuture:
    """Mimics FutureRecordMetadata.get()."""

    def __init__(
        self,
        error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self._error = error
        self._gate = gate

    def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        if self._gate is not None and not self._gate.wait(timeout):
            raise KafkaTimeoutError(f"Timeout after waiting for {timeout} secs.")
        if self._error is not None:
            raise self._error
        return {"offset": 0}


class FakeProducer:
    """Records every send; failures and delays are configured per topic."""

    def __init__(self) -> None:
        self.sent: List[tuple] = []
        self.errors: Dict[str, Exception] = {}
        self.gates: Dict[str, threading.Event] = {}
        self.flushed = False
        self.closed = False
        self._lock = threading.Lock()

    def send(self, topic: str, key: Optional[bytes] = None, value: Optional[bytes] = None):
        with self._lock:
            self.sent.append((topic, key, value))
        return FakeSendFuture(error=self.errors.get(topic), gate=self.gates.get(topic))

    def flush(self, timeout: Optional[float] = None) -> None:
        self.flushed = True

    def close(self, timeout: Optional[float] = None) -> None:
        self.closed = True


class FakeConsumer:
    """
    Serves queued batches from poll().

    A queued exception is raised instead of returning a batch. Once the queue
    is empty, ``on_empty`` is called (typically to stop the pipeline).
    """

    def __init__(self, batches: List[Any], on_empty: Optional[Callable[[], None]] = None) -> None:
        self.batches = list(batches)
        self.on_empty = on_empty
        self.commits = 0
        self.closed = False

    def poll(self, timeout_ms: int = 0, max_records: Optional[int] = None) -> Dict[Any, list]:
        if not self.batches:
            if self.on_empty is not None:
                self.on_empty()
            return {}
        item = self.batches.pop(0)
        if isinstance(item, Exception):
            raise item
        by_partition: Dict[Any, list] = {}
        for record in item:
            by_partition.setdefault((record.topic, record.partition), []).append(record)
        return by_partition

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True


def envelope(op: str, db: str, table: str, wrapped: bool = False) -> bytes:
    """Build a Debezium JSON payload."""
    body = {
        "before": None,
        "after": {"id": 62, "update_time": "2025-08-07 13:37:45"},
        "op": op,
        "source": {"db": db, "table": table},
    }
    if wrapped:
        body = {"schema": {"type": "struct"}, "payload": body}
    return json.dumps(body).encode("utf-8")


def make_record(
    op: str,
    db: str,
    table: str,
    topic: str = "cdc.orders",
    offset: int = 0,
    key: Optional[bytes] = b'{"id": 62}',
) -> FakeRecord:
    return FakeRecord(
        topic=topic, partition=0, offset=offset, key=key, value=envelope(op, db, table)
    )


ORDERS_RULES = [
    {
        "source_topic": "cdc.orders",
        "db": "shop",
        "table": "^orders_[0-9]+$",
        "target_topic": "orders-out",
    },
]


VALID_CONFIG = """
kafka:
  bootstrap_servers: localhost:9092
  group: cdc-router-test
  bindings:
    - cdc.orders
transforms:
  - source_topic: cdc.orders
    db: shop
    table: ^orders_[0-9]+$
    target_topic: orders-out
  - source_topic: cdc.orders
    db: shop
    table: customers
    target_topic: customers-out
"""
