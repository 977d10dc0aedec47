"""
IngestStats model holding cumulative ingestion totals.
"""

from pydantic import BaseModel, Field


class ThroughputStats(BaseModel):
    """Rows and bytes per second over some elapsed duration."""

    rows_per_second: float = Field(0.0, ge=0.0)
    bytes_per_second: float = Field(0.0, ge=0.0)


class IngestStats(BaseModel):
    """
    Cumulative counters since a worker (or process) started.

    Attributes:
        total_rows: Rows loaded so far
        total_bytes: NDJSON bytes loaded so far
    """

    total_rows: int = Field(0, ge=0)
    total_bytes: int = Field(0, ge=0)

    def rates(self, elapsed_seconds: float) -> ThroughputStats:
        """
        Derive throughput from the totals.

        Args:
            elapsed_seconds: Duration to divide the totals by

        Returns:
            ThroughputStats, zero when the duration is not positive
        """
        if elapsed_seconds <= 0:
            return ThroughputStats()
        return ThroughputStats(
            rows_per_second=self.total_rows / elapsed_seconds,
            bytes_per_second=self.total_bytes / elapsed_seconds,
        )
