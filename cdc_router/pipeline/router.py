"""CDC routing pipeline: consume, classify, route and forward change events."""

import signal
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional, Tuple

from kafka.errors import KafkaError, KafkaTimeoutError

from cdc_router.common.config import PipelineConfig
from cdc_router.common.exceptions import ConsumerError, ParseError, PublishError
from cdc_router.common.utils import retry_with_backoff
from cdc_router.observability.logging_config import event_fields, get_logger
from cdc_router.observability.metrics import MetricsSink
from cdc_router.routing.envelope import ChangeEvent, Operation, parse_envelope
from cdc_router.routing.table import RoutingTable

logger = get_logger(__name__)


class CDCRouterPipeline:
    """
    Routes change events from source topics to destination topics.

    A single thread polls the consumer and makes every routing decision.
    Publishes run on a worker pool; at most ``max_in_flight`` of them may be
    outstanding, and the poll loop blocks until a slot frees up, so a slow
    destination slows down consumption instead of growing a queue.

    With ``commit_policy="after_forward"`` offsets of a polled batch are
    committed only after every publish of that batch has finished. With
    ``"auto"`` the consumer commits on its own schedule, independent of
    forwarding: a crash after an auto-commit but before a publish completes
    loses that forward.
    """

    def __init__(
        self,
        routing_table: RoutingTable,
        consumer_factory: Callable[[], Any],
        producer: Any,
        metrics: MetricsSink,
        config: Optional[PipelineConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the routing pipeline.

        Args:
            routing_table: Compiled routing rules
            consumer_factory: Creates a subscribed consumer; called again on reconnect
            producer: Producer used to forward records
            metrics: Metrics sink
            config: Pipeline settings (defaults from environment)
            sleep: Sleep function used between reconnect attempts
        """
        self.routing_table = routing_table
        self.metrics = metrics
        self.config = config or PipelineConfig()

        self._consumer_factory = consumer_factory
        self._producer = producer
        self._sleep = sleep

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_in_flight,
            thread_name_prefix="cdc-router-publish",
        )
        self._slots = threading.BoundedSemaphore(self.config.max_in_flight)

        # Runtime state
        self._consumer: Optional[Any] = None
        self._stop_event = threading.Event()
        self._running = False
        self._closed = False
        self._consecutive_poll_failures = 0
        self.records_consumed = 0

    @property
    def running(self) -> bool:
        return self._running

    def install_signal_handlers(self) -> None:
        """Stop the pipeline on SIGINT/SIGTERM. Must be called from the main thread."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def run(self) -> None:
        """
        Consume until stopped, then drain and close.

        Raises:
            ConsumerError: If the consumer cannot be (re)connected
        """
        logger.info(
            f"Starting CDC router: {len(self.routing_table)} rules, "
            f"max in-flight {self.config.max_in_flight}, "
            f"commit policy {self.config.commit_policy}"
        )
        try:
            if self._consumer is None:
                self._consumer = self._connect(reconnect=False)
            self._running = True
            while not self._stop_event.is_set():
                self.poll_once()
        finally:
            self._running = False
            self.close()

    def stop(self) -> None:
        """Request the poll loop to exit after the current batch."""
        if not self._stop_event.is_set():
            logger.info("Stopping CDC router...")
        self._stop_event.set()

    def poll_once(self) -> int:
        """
        Poll one batch and dispatch its records.

        Returns:
            Number of records consumed

        Raises:
            ConsumerError: If polling keeps failing past the reconnect budget
        """
        if self._consumer is None:
            self._consumer = self._connect(reconnect=False)

        try:
            batch = self._consumer.poll(
                timeout_ms=self.config.poll_timeout_ms,
                max_records=self.config.max_poll_records,
            )
        except KafkaError as e:
            self._handle_poll_failure(e)
            return 0
        self._consecutive_poll_failures = 0

        if not batch:
            return 0

        pending: List[Future] = []
        consumed = 0
        for records in batch.values():
            for record in records:
                consumed += 1
                future = self.process_record(record)
                if future is not None:
                    pending.append(future)

        self.records_consumed += consumed
        logger.debug(f"Dispatched batch: {consumed} records, {len(pending)} forwards")

        if self.config.commit_policy == "after_forward":
            wait(pending)
            self._commit()

        return consumed

    def process_record(self, record: Any) -> Optional[Future]:
        """
        Classify one consumed record and submit its forward if it has a route.

        Args:
            record: Consumer record with topic, partition, offset, key and value

        Returns:
            Future resolving to True/False for a submitted forward, None when
            the record was skipped or dropped
        """
        position = f"{record.topic}[{record.partition}]@{record.offset}"
        try:
            routed = self._classify(record)
        except ParseError as e:
            logger.warning(f"Skipping unparsable record {position}: {e}")
            self.metrics.record_parse_error(record.topic, e.reason)
            return None
        except Exception as e:
            logger.error(f"Unexpected error classifying record {position}: {e}", exc_info=True)
            self.metrics.record_parse_error(record.topic, "unexpected")
            return None

        if routed is None:
            return None
        event, destination = routed
        return self.submit(event, destination)

    def _classify(self, record: Any) -> Optional[Tuple[ChangeEvent, str]]:
        event = parse_envelope(
            record.value,
            record.topic,
            key=record.key,
            partition=record.partition,
            offset=record.offset,
        )
        self.metrics.record_observed(
            event.source_topic, event.database, event.table, event.operation.value
        )

        if event.operation is Operation.DELETE:
            logger.debug(
                f"Delete event discarded: {event.database}.{event.table}",
                extra={"extra": event_fields(event)},
            )
            return None

        destination = self.routing_table.resolve(event.source_topic, event.database, event.table)
        if destination is None:
            logger.debug(
                f"No route for {event.source_topic} {event.database}.{event.table}",
                extra={"extra": event_fields(event)},
            )
            return None

        return event, destination

    def submit(self, event: ChangeEvent, destination: str) -> Future:
        """
        Queue a forward, blocking while all in-flight slots are taken.

        Args:
            event: Parsed event carrying the original key and value
            destination: Destination topic

        Returns:
            Future resolving to True when the forward succeeded
        """
        self._slots.acquire()
        self.metrics.publish_started()
        try:
            return self._executor.submit(self._forward, event, destination)
        except RuntimeError:
            self.metrics.publish_finished()
            self._slots.release()
            raise

    def close(self) -> None:
        """Wait for in-flight forwards, then flush and close the Kafka clients."""
        if self._closed:
            return
        self._closed = True

        logger.info("Waiting for in-flight forwards to complete...")
        self._executor.shutdown(wait=True)

        try:
            self._producer.flush(timeout=self.config.shutdown_timeout_seconds)
        except KafkaError as e:
            logger.warning(f"Producer flush did not complete: {e}")

        try:
            self._producer.close(timeout=self.config.shutdown_timeout_seconds)
        except Exception as e:
            logger.error(f"Error closing producer: {e}", exc_info=True)
        finally:
            if self._consumer is not None:
                self._close_consumer(self._consumer)
                self._consumer = None

        logger.info(f"CDC router stopped. Total records consumed: {self.records_consumed}")

    def _forward(self, event: ChangeEvent, destination: str) -> bool:
        started = time.monotonic()
        try:
            self._publish(event, destination, started)
        except PublishError as e:
            logger.warning(
                f"Forward of {event.database}.{event.table} failed: {e}",
                extra={"extra": {**event_fields(event), "destination_topic": destination}},
            )
            self.metrics.record_publish_error(
                destination, e.error_type, time.monotonic() - started
            )
            return False
        except Exception as e:
            logger.error(
                f"Unexpected error forwarding {event.database}.{event.table} to {destination}: {e}",
                exc_info=True,
            )
            self.metrics.record_publish_error(destination, "unexpected", time.monotonic() - started)
            return False
        finally:
            self.metrics.publish_finished()
            self._slots.release()

        self.metrics.record_forwarded(
            destination, event.operation.value, time.monotonic() - started
        )
        logger.debug(
            f"Forwarded {event.database}.{event.table} ({event.operation.value}) to {destination}"
        )
        return True

    def _publish(self, event: ChangeEvent, destination: str, started: float) -> None:
        timeout = self.config.publish_timeout_seconds
        try:
            send_future = self._producer.send(destination, key=event.key, value=event.value)
            remaining = max(0.0, timeout - (time.monotonic() - started))
            send_future.get(timeout=remaining)
        except KafkaTimeoutError as e:
            raise PublishError(
                f"publish to {destination} exceeded {timeout}s: {e}", error_type="timeout"
            ) from e
        except KafkaError as e:
            raise PublishError(f"publish to {destination} failed: {e}", error_type="broker") from e

    def _commit(self) -> None:
        try:
            self._consumer.commit()
        except KafkaError as e:
            # Uncommitted records are redelivered after a rebalance or restart.
            logger.warning(f"Offset commit failed: {e}")

    def _handle_poll_failure(self, error: KafkaError) -> None:
        self._consecutive_poll_failures += 1
        logger.error(
            f"Consumer poll failed ({self._consecutive_poll_failures} consecutive): {error}"
        )
        if self._consecutive_poll_failures > self.config.reconnect_max_attempts:
            raise ConsumerError(
                f"Consumer poll failed {self._consecutive_poll_failures} times in a row: {error}",
                attempts=self._consecutive_poll_failures,
            ) from error

        if self._consumer is not None:
            self._close_consumer(self._consumer)
            self._consumer = None
        self._consumer = self._connect(reconnect=True)

    def _connect(self, reconnect: bool) -> Any:
        attempts = self.config.reconnect_max_attempts + 1

        def attempt() -> Any:
            if reconnect:
                self.metrics.record_reconnect()
            return self._consumer_factory()

        if reconnect:
            self._sleep(self.config.reconnect_initial_delay_seconds)
        try:
            return retry_with_backoff(
                attempt,
                max_retries=self.config.reconnect_max_attempts,
                initial_delay=self.config.reconnect_initial_delay_seconds,
                backoff_factor=self.config.reconnect_backoff_factor,
                max_delay=self.config.reconnect_max_delay_seconds,
                retry_on=(KafkaError,),
                sleep=self._sleep,
            )
        except KafkaError as e:
            raise ConsumerError(
                f"Unable to connect consumer after {attempts} attempts: {e}",
                attempts=attempts,
            ) from e

    def _close_consumer(self, consumer: Any) -> None:
        try:
            consumer.close()
        except KafkaError as e:
            logger.warning(f"Error closing consumer: {e}")

    def _signal_handler(self, signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()
