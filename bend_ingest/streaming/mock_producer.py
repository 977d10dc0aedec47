"""
Mock data producer used to exercise the pipeline end to end.

Publishes synthetic JSON events to the configured topic before the workers
start consuming.
"""

import json
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from confluent_kafka import Producer

from bend_ingest.core.config import IngestConfig
from bend_ingest.core.errors import BrokerError

logger = logging.getLogger(__name__)

EVENT_TYPES = ["page_view", "add_to_cart", "checkout", "purchase"]


def build_mock_event(sequence: int, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """
    Build one synthetic event.

    Args:
        sequence: Position of the event in the generated run
        rng: Random generator (seed it for reproducible data)
    """
    rng = rng or random
    return {
        "id": sequence,
        "event_id": str(uuid.uuid4()),
        "event_type": rng.choice(EVENT_TYPES),
        "user_id": rng.randint(1, 10_000),
        "amount": round(rng.uniform(1, 500), 2),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


def produce_mock_data(
    config: IngestConfig,
    count: int,
    producer_factory: Callable[[dict], Any] = Producer,
    flush_timeout: float = 30.0,
) -> int:
    """
    Publish count mock events to the configured topic.

    Args:
        config: Process configuration
        count: Number of events to publish
        producer_factory: Builds the underlying producer from its settings
        flush_timeout: Seconds to wait for outstanding deliveries

    Returns:
        Number of events handed to the producer

    Raises:
        BrokerError: If some events were still undelivered after flush_timeout
    """
    if count <= 0:
        return 0

    producer = producer_factory({"bootstrap.servers": ",".join(config.bootstrap_server_list)})
    logger.info(f"Producing {count} mock events to topic '{config.kafka_topic}'")

    for sequence in range(count):
        event = build_mock_event(sequence)
        key = event["event_id"].encode("utf-8")
        value = json.dumps(event).encode("utf-8")
        try:
            producer.produce(config.kafka_topic, key=key, value=value)
        except BufferError:
            # Local queue is full: wait for deliveries, then try once more
            producer.poll(1.0)
            producer.produce(config.kafka_topic, key=key, value=value)
        # Serve delivery callbacks so the local queue does not fill up
        producer.poll(0)

    remaining = producer.flush(flush_timeout)
    if remaining:
        raise BrokerError(f"{remaining} mock events were not delivered within {flush_timeout}s")

    logger.info(f"Produced {count} mock events")
    return count
