"""
MessageBatch model representing the messages flushed together in one load.
"""

from typing import List, Tuple

from pydantic import BaseModel, Field

from .message import Message

PartitionKey = Tuple[str, int]


class MessageBatch(BaseModel):
    """
    Ordered messages drained from an accumulator.

    A worker never flushes an empty batch; the ingester still accepts one
    and treats it as a no-op.

    Attributes:
        messages: Messages in the order they were polled
    """

    messages: List[Message] = Field(default_factory=list)

    class Config:
        frozen = True

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def is_empty(self) -> bool:
        return not self.messages

    def max_offsets(self) -> dict[PartitionKey, int]:
        """
        Highest offset observed per (topic, partition).

        Returns:
            Mapping used to commit consumption progress after a successful load
        """
        offsets: dict[PartitionKey, int] = {}
        for message in self.messages:
            key = (message.topic, message.partition)
            if key not in offsets or message.offset > offsets[key]:
                offsets[key] = message.offset
        return offsets

    def first_offsets(self) -> dict[PartitionKey, int]:
        """
        Lowest offset observed per (topic, partition).

        Returns:
            Mapping used to rewind a consumer when a batch is abandoned
        """
        offsets: dict[PartitionKey, int] = {}
        for message in self.messages:
            key = (message.topic, message.partition)
            if key not in offsets or message.offset < offsets[key]:
                offsets[key] = message.offset
        return offsets
