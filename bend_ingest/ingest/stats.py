"""
Cumulative ingestion counters shared by all workers.
"""

import threading
import time
from typing import Callable

from bend_ingest.core.models import IngestStats, ThroughputStats


class StatsRecorder:
    """
    Thread-safe running totals of loaded rows and bytes.

    stats(elapsed) divides the cumulative totals by whatever duration the
    caller passes, which is the historical behaviour of the throughput log.
    session_stats() divides them by the time since the recorder was created.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._started_at = clock()
        self._total_rows = 0
        self._total_bytes = 0

    def record_metric(self, bytes_count: int, row_count: int) -> None:
        """Add one loaded batch to the totals."""
        with self._lock:
            self._total_bytes += bytes_count
            self._total_rows += row_count

    def snapshot(self) -> IngestStats:
        with self._lock:
            return IngestStats(total_rows=self._total_rows, total_bytes=self._total_bytes)

    def stats(self, elapsed_seconds: float) -> ThroughputStats:
        """Cumulative totals over the supplied elapsed duration."""
        return self.snapshot().rates(elapsed_seconds)

    def session_stats(self) -> ThroughputStats:
        """Cumulative totals over the time since the recorder was created."""
        return self.snapshot().rates(self._clock() - self._started_at)
