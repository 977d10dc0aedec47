"""
Ingestion pipeline orchestration.

Coordinates the flow: N consume workers (one thread each) -> shared
ingester -> Databend. Shutdown is cooperative through one stop event.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from bend_ingest.core.config import IngestConfig
from bend_ingest.ingest.ingester import DatabendIngester
from bend_ingest.observability.metrics import MetricsCollector
from bend_ingest.streaming.sources.kafka_source import KafkaSource, MessageSource
from bend_ingest.streaming.worker import ConsumeWorker

logger = logging.getLogger(__name__)

SourceFactory = Callable[[IngestConfig, str], MessageSource]


def kafka_source_factory(config: IngestConfig, worker_name: str) -> MessageSource:
    return KafkaSource(config, client_id=worker_name)


class IngestPipeline:
    """
    Main ingestion orchestrator.

    Handles the complete flow:
    1. Create one Kafka subscription per worker
    2. Run the workers concurrently
    3. Propagate the stop signal
    4. Wait until every worker has returned
    """

    def __init__(
        self,
        config: IngestConfig,
        ingester: DatabendIngester,
        source_factory: SourceFactory = kafka_source_factory,
        stop_event: Optional[threading.Event] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize ingestion pipeline.

        Args:
            config: Process configuration
            ingester: Ingester shared by all workers
            source_factory: Builds the subscription of a named worker
            stop_event: Shared stop signal (created if not given)
            metrics: Prometheus metrics collector
        """
        self.config = config
        self.ingester = ingester
        self.source_factory = source_factory
        self.stop_event = stop_event or threading.Event()
        self.metrics = metrics or MetricsCollector()

        self.workers: List[ConsumeWorker] = []
        self.failures: Dict[str, BaseException] = {}
        self._threads: List[threading.Thread] = []

        logger.info(
            f"Initialized IngestPipeline (topic: {config.kafka_topic}, table: {config.databend_table}, "
            f"workers: {config.workers}, batch size: {config.batch_size}, "
            f"max interval: {config.batch_max_interval}s)"
        )

    def start(self) -> None:
        """
        Start one thread per configured worker.

        Raises:
            RuntimeError: If the pipeline was already started
            BrokerError: If a worker cannot subscribe; workers already started are stopped
        """
        if self._threads:
            raise RuntimeError("Pipeline already started")

        for i in range(self.config.workers):
            name = f"worker-{i}"
            try:
                source = self.source_factory(self.config, name)
            except Exception:
                logger.error(f"Failed to create source for {name}, stopping pipeline", exc_info=True)
                self.stop()
                self.join()
                raise

            worker = ConsumeWorker(
                self.config,
                name,
                self.ingester,
                source,
                stop_event=self.stop_event,
                metrics=self.metrics,
            )
            thread = threading.Thread(target=self._run_worker, args=(worker,), name=name)
            self.workers.append(worker)
            self._threads.append(thread)
            thread.start()

        logger.info(f"Started {len(self._threads)} workers")

    def _run_worker(self, worker: ConsumeWorker) -> None:
        try:
            worker.run()
        except Exception as e:
            logger.error(f"{worker.name} crashed: {e}", exc_info=True)
            self.failures[worker.name] = e

    def stop(self) -> None:
        """Ask every worker to finish its current flush and return."""
        if not self.stop_event.is_set():
            logger.info("Stopping ingestion pipeline")
        self.stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the workers.

        Returns:
            True if every worker thread has returned
        """
        for thread in self._threads:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads)

    def run(self) -> None:
        """Start the workers and block until all of them returned."""
        self.start()
        self.join()
        logger.info("Ingestion pipeline stopped", extra=self.get_status())

    def get_status(self) -> dict:
        """
        Pipeline status for logs.

        Returns:
            Worker states, cumulative totals and session throughput
        """
        snapshot = self.ingester.stats.snapshot()
        throughput = self.ingester.stats.session_stats()
        return {
            "workers": {worker.name: worker.state.value for worker in self.workers},
            "unhealthy_workers": [worker.name for worker in self.workers if not worker.healthy],
            "failed_workers": sorted(self.failures),
            "total_rows": snapshot.total_rows,
            "total_bytes": snapshot.total_bytes,
            "rows_per_second": round(throughput.rows_per_second, 2),
            "bytes_per_second": round(throughput.bytes_per_second, 2),
        }
