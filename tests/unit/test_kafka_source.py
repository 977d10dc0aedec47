"""
Unit tests for the Kafka source, using a stand-in for confluent_kafka.Consumer.
"""

from datetime import datetime, timezone

import pytest
from confluent_kafka import TIMESTAMP_CREATE_TIME, TIMESTAMP_NOT_AVAILABLE, KafkaError, KafkaException

from bend_ingest.core.errors import BrokerError
from bend_ingest.streaming.sources.kafka_source import KafkaSource, build_consumer_config, to_message


class StubKafkaMessage:
    """Mimics the accessors of confluent_kafka.Message"""

    def __init__(self, offset=0, value=b'{"a": 1}', key=None, partition=0, topic="test",
                 timestamp=(TIMESTAMP_CREATE_TIME, 1714564800123), error=None):
        self._offset = offset
        self._value = value
        self._key = key
        self._partition = partition
        self._topic = topic
        self._timestamp = timestamp
        self._error = error

    def error(self):
        return self._error

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def key(self):
        return self._key

    def value(self):
        return self._value

    def timestamp(self):
        return self._timestamp


class StubConsumer:
    """Records calls made on the consumer"""

    def __init__(self, conf):
        self.conf = conf
        self.subscriptions = []
        self.queue = []
        self.commits = []
        self.seeks = []
        self.closed = False

    def subscribe(self, topics):
        self.subscriptions.append(topics)

    def poll(self, timeout):
        return self.queue.pop(0) if self.queue else None

    def commit(self, offsets=None, asynchronous=True):
        self.commits.append((offsets, asynchronous))

    def seek(self, partition):
        self.seeks.append(partition)

    def close(self):
        self.closed = True


@pytest.fixture
def source_and_consumer(make_config):
    """KafkaSource wired to a StubConsumer"""
    consumers = []

    def factory(conf):
        consumer = StubConsumer(conf)
        consumers.append(consumer)
        return consumer

    source = KafkaSource(make_config(kafka_topic="orders"), client_id="worker-0", consumer_factory=factory)
    return source, consumers[0]


@pytest.mark.unit
class TestConsumerConfig:
    """Tests for build_consumer_config"""

    def test_manual_commit_settings(self, make_config):
        """Test auto-commit is off and the group is shared"""
        conf = build_consumer_config(
            make_config(kafka_bootstrap_servers="k1:9092, k2:9092", kafka_consumer_group="g1"),
            client_id="worker-3",
        )

        assert conf["bootstrap.servers"] == "k1:9092,k2:9092"
        assert conf["group.id"] == "g1"
        assert conf["enable.auto.commit"] is False
        assert conf["auto.offset.reset"] == "earliest"
        assert conf["client.id"] == "worker-3"


@pytest.mark.unit
class TestKafkaSource:
    """Tests for KafkaSource"""

    def test_subscribes_to_topic(self, source_and_consumer):
        """Test the configured topic is subscribed"""
        _, consumer = source_and_consumer

        assert consumer.subscriptions == [["orders"]]

    def test_poll_converts_message(self, source_and_consumer):
        """Test broker messages become Message models"""
        source, consumer = source_and_consumer
        consumer.queue.append(StubKafkaMessage(offset=42, key=b"k", partition=2, topic="orders"))

        message = source.poll(1.0)

        assert message.topic == "orders"
        assert message.partition == 2
        assert message.offset == 42
        assert message.key == b"k"
        assert message.payload == b'{"a": 1}'
        assert message.create_time == datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)

    def test_poll_timeout_returns_none(self, source_and_consumer):
        """Test nothing arriving within the timeout"""
        source, _ = source_and_consumer

        assert source.poll(0.1) is None

    def test_partition_eof_is_not_an_error(self, source_and_consumer):
        """Test end-of-partition events are skipped"""
        source, consumer = source_and_consumer
        consumer.queue.append(StubKafkaMessage(error=KafkaError(KafkaError._PARTITION_EOF)))

        assert source.poll(0.1) is None

    def test_poll_error(self, source_and_consumer):
        """Test broker errors surface as BrokerError"""
        source, consumer = source_and_consumer
        consumer.queue.append(StubKafkaMessage(error=KafkaError(KafkaError._TRANSPORT)))

        with pytest.raises(BrokerError, match="poll failed"):
            source.poll(0.1)

    def test_commit_next_offset(self, source_and_consumer):
        """Test the offset after the last loaded one is committed synchronously"""
        source, consumer = source_and_consumer

        source.commit({("orders", 0): 9, ("orders", 1): 3})

        partitions, asynchronous = consumer.commits[0]
        assert asynchronous is False
        assert sorted((tp.topic, tp.partition, tp.offset) for tp in partitions) == [
            ("orders", 0, 10),
            ("orders", 1, 4),
        ]

    def test_commit_nothing(self, source_and_consumer):
        """Test an empty commit does not reach the broker"""
        source, consumer = source_and_consumer

        source.commit({})

        assert consumer.commits == []

    def test_commit_failure(self, make_config):
        """Test commit errors surface as BrokerError"""
        class FailingConsumer(StubConsumer):
            def commit(self, offsets=None, asynchronous=True):
                raise KafkaException(KafkaError(KafkaError._NO_OFFSET))

        source = KafkaSource(make_config(), consumer_factory=FailingConsumer)

        with pytest.raises(BrokerError, match="commit failed"):
            source.commit({("test", 0): 1})

    def test_rewind_seeks_to_first_offset(self, source_and_consumer):
        """Test rewinding seeks each partition back"""
        source, consumer = source_and_consumer

        source.rewind({("orders", 0): 5})

        assert [(tp.topic, tp.partition, tp.offset) for tp in consumer.seeks] == [("orders", 0, 5)]

    def test_close(self, source_and_consumer):
        """Test close leaves the group"""
        source, consumer = source_and_consumer

        source.close()

        assert consumer.closed is True


@pytest.mark.unit
class TestToMessage:
    """Tests for to_message"""

    def test_missing_timestamp_uses_read_time(self):
        """Test messages without a broker timestamp get the current time"""
        before = datetime.now(timezone.utc)

        message = to_message(StubKafkaMessage(timestamp=(TIMESTAMP_NOT_AVAILABLE, 0)))

        assert message.create_time >= before

    def test_null_value(self):
        """Test tombstones become empty payloads"""
        assert to_message(StubKafkaMessage(value=None)).payload == b""
