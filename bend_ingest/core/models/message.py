"""
Message model representing a single record read from a Kafka partition.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Message(BaseModel):
    """
    A record read from the queue (immutable once read).

    Attributes:
        topic: Topic the message was read from
        partition: Partition id within the topic
        offset: Offset within the partition (monotonic per partition)
        key: Message key, None when the producer sent no key
        payload: Raw message value
        create_time: Message timestamp as reported by the broker
    """

    topic: str = Field(..., min_length=1)
    partition: int = Field(..., ge=0)
    offset: int = Field(..., ge=0)
    key: bytes | None = None
    payload: bytes
    create_time: datetime

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "topic": "orders",
                "partition": 3,
                "offset": 1042,
                "key": "order-1042",
                "payload": '{"order_id": 1042, "amount": 99.99}',
                "create_time": "2025-11-17T08:30:00.123Z"
            }
        }
