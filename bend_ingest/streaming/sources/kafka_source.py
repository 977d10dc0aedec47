"""
Kafka source for the consume workers.

Consumes messages from an Apache Kafka topic with confluent-kafka. Offsets
are committed manually, and only after the batch holding them was loaded.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from confluent_kafka import TIMESTAMP_NOT_AVAILABLE, Consumer, KafkaError, KafkaException, TopicPartition

from bend_ingest.core.config import IngestConfig
from bend_ingest.core.errors import BrokerError
from bend_ingest.core.models import Message
from bend_ingest.core.models.message_batch import PartitionKey
from bend_ingest.utils.time_format import from_epoch_millis

logger = logging.getLogger(__name__)


class MessageSource(Protocol):
    """Capability a consume worker needs from the queue."""

    def poll(self, timeout: float) -> Optional[Message]:
        ...

    def commit(self, offsets: Mapping[PartitionKey, int]) -> None:
        ...

    def rewind(self, offsets: Mapping[PartitionKey, int]) -> None:
        ...

    def close(self) -> None:
        ...


def build_consumer_config(config: IngestConfig, client_id: Optional[str] = None) -> dict[str, Any]:
    """
    Build the librdkafka settings of a consume worker.

    Args:
        config: Process configuration
        client_id: Name reported to the brokers (the worker name)

    Returns:
        Settings dictionary for confluent_kafka.Consumer
    """
    consumer_config = {
        "bootstrap.servers": ",".join(config.bootstrap_server_list),
        "group.id": config.kafka_consumer_group,
        "enable.auto.commit": False,
        "auto.offset.reset": "earliest",
        "enable.partition.eof": False,
    }
    if client_id:
        consumer_config["client.id"] = client_id
    return consumer_config


class KafkaSource:
    """
    Subscription of one worker to the configured topic.

    Partition assignment across workers is left to the consumer group.
    """

    def __init__(
        self,
        config: IngestConfig,
        client_id: Optional[str] = None,
        consumer_factory: Callable[[dict], Any] = Consumer,
    ):
        """
        Initialize Kafka source and subscribe.

        Args:
            config: Process configuration
            client_id: Name reported to the brokers
            consumer_factory: Builds the underlying consumer from its settings

        Raises:
            BrokerError: If the consumer cannot be created or subscribed
        """
        self.topic = config.kafka_topic
        self.group_id = config.kafka_consumer_group

        try:
            self._consumer = consumer_factory(build_consumer_config(config, client_id))
            self._consumer.subscribe([self.topic])
        except KafkaException as e:
            raise BrokerError(f"subscribe to topic '{self.topic}' failed: {e}") from e

        logger.info(
            f"Initialized KafkaSource (topic: {self.topic}, group: {self.group_id}, "
            f"servers: {config.kafka_bootstrap_servers})"
        )

    def poll(self, timeout: float) -> Optional[Message]:
        """
        Wait up to timeout seconds for the next message.

        Returns:
            The message, or None when nothing arrived

        Raises:
            BrokerError: If the broker reported an error
        """
        try:
            msg = self._consumer.poll(timeout)
        except KafkaException as e:
            raise BrokerError(f"poll failed: {e}") from e

        if msg is None:
            return None

        error = msg.error()
        if error is not None:
            if error.code() == KafkaError._PARTITION_EOF:
                return None
            raise BrokerError(f"poll failed: {error}")

        return to_message(msg)

    def commit(self, offsets: Mapping[PartitionKey, int]) -> None:
        """
        Synchronously commit consumption progress.

        Args:
            offsets: Highest loaded offset per (topic, partition); Kafka stores
                the next offset to read, so offset + 1 is committed

        Raises:
            BrokerError: If the commit fails
        """
        partitions = [
            TopicPartition(topic, partition, offset + 1)
            for (topic, partition), offset in offsets.items()
        ]
        if not partitions:
            return
        try:
            self._consumer.commit(offsets=partitions, asynchronous=False)
        except KafkaException as e:
            raise BrokerError(f"commit failed: {e}") from e

    def rewind(self, offsets: Mapping[PartitionKey, int]) -> None:
        """
        Seek partitions back so the given offsets are delivered again.

        Raises:
            BrokerError: If a partition is no longer assigned to this consumer
        """
        for (topic, partition), offset in offsets.items():
            try:
                self._consumer.seek(TopicPartition(topic, partition, offset))
            except KafkaException as e:
                raise BrokerError(f"seek {topic}[{partition}] to {offset} failed: {e}") from e

    def close(self) -> None:
        """Leave the consumer group"""
        self._consumer.close()


def to_message(msg: Any) -> Message:
    """
    Convert a confluent_kafka.Message into the immutable Message model.

    Messages without a broker timestamp get the time they were read.
    """
    timestamp_type, timestamp = msg.timestamp()
    if timestamp_type == TIMESTAMP_NOT_AVAILABLE or timestamp is None or timestamp < 0:
        create_time = datetime.now(timezone.utc)
    else:
        create_time = from_epoch_millis(timestamp)

    return Message(
        topic=msg.topic(),
        partition=msg.partition(),
        offset=msg.offset(),
        key=msg.key(),
        payload=msg.value() or b"",
        create_time=create_time,
    )
