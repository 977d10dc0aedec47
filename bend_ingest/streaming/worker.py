"""
Consume worker: the poll -> accumulate -> flush -> commit loop.

One worker runs per concurrency unit. Each owns its Kafka subscription and
its accumulator; the ingester and its stats are shared.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from bend_ingest.core.config import IngestConfig
from bend_ingest.core.errors import BrokerError, IngestError
from bend_ingest.core.models import MessageBatch
from bend_ingest.ingest.accumulator import BatchAccumulator
from bend_ingest.ingest.ingester import DatabendIngester
from bend_ingest.observability.metrics import MetricsCollector
from bend_ingest.streaming.sources.kafka_source import MessageSource

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    COMMITTING = "committing"
    RETRYING = "retrying"
    STOPPED = "stopped"


class ConsumeWorker:
    """
    Drives one Kafka subscription into the shared ingester.

    Offsets are committed only after the batch holding them was loaded. A
    failing batch is retried with exponential backoff; once the retries are
    used up the partitions are rewound to the start of the batch so the same
    range is polled again, and the worker reports itself unhealthy until a
    later batch succeeds. If that rewind fails the worker raises instead of
    consuming on, so its partitions restart from the last committed offset.
    """

    def __init__(
        self,
        config: IngestConfig,
        name: str,
        ingester: DatabendIngester,
        source: MessageSource,
        stop_event: Optional[threading.Event] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize consume worker.

        Args:
            config: Process configuration
            name: Worker name used in logs and metrics
            ingester: Shared ingester
            source: This worker's Kafka subscription
            stop_event: Shared cooperative stop signal
            metrics: Prometheus metrics collector
            clock: Monotonic time source for the accumulator
        """
        self.config = config
        self.name = name
        self.ingester = ingester
        self.source = source
        self.stop_event = stop_event or threading.Event()
        self.metrics = metrics or MetricsCollector()
        self.accumulator = BatchAccumulator(
            max_batch_size=config.batch_size,
            max_batch_interval=config.batch_max_interval,
            clock=clock,
        )
        self.state = WorkerState.IDLE
        self.healthy = True
        self.batches_loaded = 0
        self.batches_abandoned = 0

    def run(self) -> None:
        """
        Consume until the stop event is set.

        Buffered messages get one last flush attempt before the worker
        returns; the source is always closed.
        """
        logger.info(f"{self.name} started")
        self.metrics.set_worker_health(self.name, True)
        try:
            while not self.stop_event.is_set():
                self.run_once()

            if self.accumulator.size() > 0:
                logger.info(f"{self.name} flushing {self.accumulator.size()} buffered messages before exit")
                self._flush(max_retries=0)
        finally:
            self.state = WorkerState.STOPPED
            self.source.close()
            logger.info(f"{self.name} stopped")

    def run_once(self) -> None:
        """One poll followed by a flush check."""
        self.state = WorkerState.POLLING
        try:
            message = self.source.poll(self.config.poll_timeout_seconds)
        except BrokerError as e:
            logger.error(f"{self.name} poll failed: {e}")
            self.metrics.record_broker_error(self.name, stage="poll")
            self.stop_event.wait(self.config.poll_timeout_seconds)
            return

        if message is not None:
            self.state = WorkerState.ACCUMULATING
            self.accumulator.append(message)
            self.metrics.record_consumed(self.name)

        if self.accumulator.should_flush():
            self._flush(max_retries=self.config.ingest_max_retries)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number attempt (1-based)."""
        delay = self.config.retry_backoff_seconds * (2 ** (attempt - 1))
        return min(delay, self.config.retry_backoff_max_seconds)

    def _flush(self, max_retries: int) -> bool:
        """
        Load the buffered messages and commit their offsets.

        Returns:
            True if the batch was loaded
        """
        self.state = WorkerState.FLUSHING
        batch = self.accumulator.drain_and_reset()

        if self._ingest_with_retries(batch, max_retries):
            self._commit(batch)
            self.batches_loaded += 1
            if not self.healthy:
                logger.info(f"{self.name} is healthy again")
            self._set_health(True)
            return True

        self.batches_abandoned += 1
        self._set_health(False)
        self._rewind(batch)
        return False

    def _ingest_with_retries(self, batch: MessageBatch, max_retries: int) -> bool:
        attempt = 0
        while True:
            try:
                self.ingester.ingest(batch)
                if attempt > 0:
                    self.metrics.record_retry(self.name, success=True)
                return True
            except IngestError as e:
                if attempt > 0:
                    self.metrics.record_retry(self.name, success=False)

                if attempt >= max_retries:
                    logger.error(
                        f"{self.name} gave up on batch of {len(batch)} messages after "
                        f"{attempt + 1} attempts; last failure at {e.stage}: {e}"
                    )
                    return False

                attempt += 1
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"{self.name} batch of {len(batch)} messages failed at {e.stage}: {e}; "
                    f"retry {attempt}/{max_retries} in {delay:.1f}s"
                )
                self.state = WorkerState.RETRYING
                if self.stop_event.wait(delay):
                    logger.warning(f"{self.name} stop requested, abandoning batch of {len(batch)} messages")
                    return False
                self.state = WorkerState.FLUSHING

    def _commit(self, batch: MessageBatch) -> None:
        self.state = WorkerState.COMMITTING
        offsets = batch.max_offsets()
        try:
            self.source.commit(offsets)
            self.metrics.record_commit(self.name, success=True)
        except BrokerError as e:
            # The rows are loaded; a redelivery after this can only duplicate them
            logger.error(f"{self.name} commit of {offsets} failed: {e}")
            self.metrics.record_commit(self.name, success=False)

    def _rewind(self, batch: MessageBatch) -> None:
        """
        Seek back to the start of an abandoned batch.

        Raises:
            BrokerError: If the seek failed. The worker must stop, since a
                later commit on the same partition would skip the unloaded range.
        """
        offsets = batch.first_offsets()
        try:
            self.source.rewind(offsets)
        except BrokerError as e:
            logger.error(f"{self.name} rewind of {offsets} failed, stopping worker: {e}")
            self.metrics.record_broker_error(self.name, stage="rewind")
            raise
        logger.warning(f"{self.name} rewound {offsets} for redelivery")

    def _set_health(self, healthy: bool) -> None:
        self.healthy = healthy
        self.metrics.set_worker_health(self.name, healthy)
