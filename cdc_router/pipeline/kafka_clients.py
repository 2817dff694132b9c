"""
Kafka client construction for the CDC router.

Consumers and producers exchange raw bytes: payloads are parsed by the router
itself and forwarded verbatim, so no (de)serializers are configured.
"""

from typing import Callable

from kafka import KafkaConsumer, KafkaProducer

from cdc_router.common.config import KafkaSection, PipelineConfig
from cdc_router.observability.logging_config import get_logger

logger = get_logger(__name__)

ConsumerFactory = Callable[[], KafkaConsumer]


def create_consumer(kafka: KafkaSection, pipeline: PipelineConfig) -> KafkaConsumer:
    """
    Connect a consumer subscribed to every bound topic.

    Args:
        kafka: Broker, group and bindings from the routing file
        pipeline: Runtime pipeline settings

    Returns:
        Subscribed consumer
    """
    try:
        consumer = KafkaConsumer(
            bootstrap_servers=kafka.bootstrap_servers.split(","),
            group_id=kafka.group,
            auto_offset_reset="earliest",
            enable_auto_commit=pipeline.commit_policy == "auto",
            max_poll_records=pipeline.max_poll_records,
            session_timeout_ms=pipeline.session_timeout_ms,
        )
        consumer.subscribe(topics=list(kafka.bindings))
    except Exception as e:
        logger.error(f"Failed to connect consumer to Kafka: {e}")
        raise

    logger.info(
        f"Consumer group {kafka.group} subscribed to {', '.join(kafka.bindings)} "
        f"(commit policy: {pipeline.commit_policy})"
    )
    return consumer


def consumer_factory(kafka: KafkaSection, pipeline: PipelineConfig) -> ConsumerFactory:
    """Bind configuration into a zero-argument consumer factory used for reconnects."""

    def factory() -> KafkaConsumer:
        return create_consumer(kafka, pipeline)

    return factory


def create_producer(kafka: KafkaSection, pipeline: PipelineConfig) -> KafkaProducer:
    """
    Connect the producer used for forwarding.

    Args:
        kafka: Broker settings from the routing file
        pipeline: Runtime pipeline settings

    Returns:
        Connected producer
    """
    timeout_ms = int(pipeline.publish_timeout_seconds * 1000)
    try:
        producer = KafkaProducer(
            bootstrap_servers=kafka.bootstrap_servers.split(","),
            batch_size=pipeline.producer_batch_size,
            linger_ms=pipeline.producer_linger_ms,
            request_timeout_ms=timeout_ms,
            max_block_ms=timeout_ms,
        )
    except Exception as e:
        logger.error(f"Failed to connect producer to Kafka: {e}")
        raise

    logger.info(f"Producer connected to {kafka.bootstrap_servers}")
    return producer
