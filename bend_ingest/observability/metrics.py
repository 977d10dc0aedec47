"""
Prometheus metrics collection for bend-ingest

All metrics live on one CollectorRegistry shared by the ingester and the
consume workers: rows and bytes loaded, per-step latency, throughput,
retries, commits and worker health.
"""
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# INGESTION METRICS
# =======================

# Rows loaded into the target table
rows_ingested_total = Counter(
    name="bend_ingest_rows_total",
    documentation="Total number of rows loaded into Databend",
    labelnames=["table"],
    registry=REGISTRY,
)

# NDJSON bytes loaded into the target table
bytes_ingested_total = Counter(
    name="bend_ingest_bytes_total",
    documentation="Total number of NDJSON bytes loaded into Databend",
    labelnames=["table"],
    registry=REGISTRY,
)

# Batches by outcome
batches_processed_total = Counter(
    name="bend_ingest_batches_total",
    documentation="Total number of batches processed",
    labelnames=["table", "status"],  # status: success, failure
    registry=REGISTRY,
)

# Rows per batch
batch_size = Histogram(
    name="bend_ingest_batch_size_records",
    documentation="Number of records in each flushed batch",
    labelnames=["table"],
    buckets=[1, 10, 100, 500, 1000, 5000, 10000, 50000],
    registry=REGISTRY,
)

# Duration of each ingest step
stage_duration_seconds = Histogram(
    name="bend_ingest_stage_duration_seconds",
    documentation="Time spent in each ingest step in seconds",
    labelnames=["stage"],  # stage: transform, generate_file, upload, copy_into
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 120.0],
    registry=REGISTRY,
)

# Throughput of the latest batch
throughput_rows_per_second = Gauge(
    name="bend_ingest_throughput_rows_per_second",
    documentation="Rows per second of the most recent batch",
    labelnames=["table"],
    registry=REGISTRY,
)

throughput_bytes_per_second = Gauge(
    name="bend_ingest_throughput_bytes_per_second",
    documentation="Bytes per second of the most recent batch",
    labelnames=["table"],
    registry=REGISTRY,
)

# =======================
# WORKER METRICS
# =======================

# Messages polled from Kafka
messages_consumed_total = Counter(
    name="bend_ingest_messages_consumed_total",
    documentation="Total number of messages polled from Kafka",
    labelnames=["worker"],
    registry=REGISTRY,
)

# Offset commits by outcome
commits_total = Counter(
    name="bend_ingest_commits_total",
    documentation="Total number of offset commits",
    labelnames=["worker", "status"],  # status: success, failure
    registry=REGISTRY,
)

# Worker health (1 healthy, 0 after a batch was abandoned)
worker_healthy = Gauge(
    name="bend_ingest_worker_healthy",
    documentation="Whether the worker's last batch was loaded (1) or abandoned (0)",
    labelnames=["worker"],
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

# Errors counter
errors_total = Counter(
    name="bend_ingest_errors_total",
    documentation="Total number of errors",
    labelnames=["stage", "component"],
    registry=REGISTRY,
)

# Retries counter
retries_total = Counter(
    name="bend_ingest_retries_total",
    documentation="Total number of batch retry attempts",
    labelnames=["worker", "status"],  # status: success, failure
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def start_metrics_server(port: int) -> None:
    """
    Expose the registry over HTTP on a background thread

    Args:
        port: Port to listen on
    """
    start_http_server(port, registry=REGISTRY)


@contextmanager
def track_duration(histogram: Histogram, **labels) -> Iterator[None]:
    """
    Observe the wall time of a block, whether it succeeds or raises

    Usage:
        with track_duration(stage_duration_seconds, stage="upload"):
            store.upload_to_stage(...)
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - started)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


# =======================
# METRICS COLLECTOR CLASS
# =======================

class MetricsCollector:
    """
    Metrics collector for ingestion components.

    This class provides a unified interface for collecting metrics
    from the ingester and the consume workers.
    """

    def record_batch_loaded(
        self,
        table: str,
        row_count: int,
        byte_count: int,
        duration_seconds: float = 0.0
    ) -> None:
        """
        Record a successfully loaded batch.

        Args:
            table: Target table
            row_count: Rows in the batch
            byte_count: NDJSON bytes in the batch
            duration_seconds: Time taken from transform to load completion
        """
        increment_counter(batches_processed_total, 1, table=table, status="success")
        increment_counter(rows_ingested_total, row_count, table=table)
        increment_counter(bytes_ingested_total, byte_count, table=table)
        observe_histogram(batch_size, row_count, table=table)
        if duration_seconds > 0:
            set_gauge(throughput_rows_per_second, row_count / duration_seconds, table=table)
            set_gauge(throughput_bytes_per_second, byte_count / duration_seconds, table=table)

    def record_batch_failed(self, table: str, stage: str) -> None:
        """
        Record a batch that failed at some ingest step.

        Args:
            table: Target table
            stage: Step that failed
        """
        increment_counter(batches_processed_total, 1, table=table, status="failure")
        increment_counter(errors_total, 1, stage=stage, component="ingester")

    def record_consumed(self, worker: str, count: int = 1) -> None:
        """Record messages polled by a worker."""
        increment_counter(messages_consumed_total, count, worker=worker)

    def record_commit(self, worker: str, success: bool = True) -> None:
        """Record an offset commit attempt."""
        increment_counter(commits_total, 1, worker=worker, status="success" if success else "failure")

    def record_retry(self, worker: str, success: bool) -> None:
        """Record the outcome of a batch retry."""
        increment_counter(retries_total, 1, worker=worker, status="success" if success else "failure")

    def record_broker_error(self, worker: str, stage: str) -> None:
        """Record a failed broker call (poll or rewind) of a worker."""
        increment_counter(errors_total, 1, stage=stage, component=worker)

    def set_worker_health(self, worker: str, healthy: bool) -> None:
        """Mark a worker healthy or unhealthy."""
        set_gauge(worker_healthy, 1 if healthy else 0, worker=worker)
