"""
Per-worker message buffer deciding when a batch is due.
"""

import time
from typing import Callable

from bend_ingest.core.models import Message, MessageBatch


class BatchAccumulator:
    """
    Buffers polled messages until the batch is full or old enough.

    Owned by a single worker; not thread-safe.
    """

    def __init__(
        self,
        max_batch_size: int,
        max_batch_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize accumulator.

        Args:
            max_batch_size: Flush once this many messages are buffered
            max_batch_interval: Flush once the first buffered message is this many seconds old
            clock: Monotonic time source in seconds
        """
        if max_batch_size <= 0:
            raise ValueError("max_batch_size must be positive")
        if max_batch_interval <= 0:
            raise ValueError("max_batch_interval must be positive")

        self.max_batch_size = max_batch_size
        self.max_batch_interval = max_batch_interval
        self._clock = clock
        self._messages: list[Message] = []
        self._first_append_at: float | None = None

    def append(self, message: Message) -> None:
        if self._first_append_at is None:
            self._first_append_at = self._clock()
        self._messages.append(message)

    def size(self) -> int:
        return len(self._messages)

    def age_since_first(self) -> float:
        """Seconds since the first message of the current batch was appended (0.0 when empty)."""
        if self._first_append_at is None:
            return 0.0
        return self._clock() - self._first_append_at

    def should_flush(self) -> bool:
        """
        Whether the buffered messages must be flushed now.

        Size is checked before age; an empty buffer never flushes.
        """
        if not self._messages:
            return False
        if self.size() >= self.max_batch_size:
            return True
        return self.age_since_first() >= self.max_batch_interval

    def drain_and_reset(self) -> MessageBatch:
        """Hand the buffered messages over as a batch and start a new one."""
        batch = MessageBatch(messages=self._messages)
        self._messages = []
        self._first_append_at = None
        return batch
