"""
Staged bulk-load ingestion into Databend.

A batch goes through: transform -> temporary NDJSON file -> stage upload ->
COPY INTO -> stats. The ingester holds no per-call state, so one instance is
shared by every consume worker.
"""

import logging
import os
import tempfile
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from bend_ingest.core.config import IngestConfig
from bend_ingest.core.errors import DDLError, FileIOError, IngestError, LoadError, UploadError
from bend_ingest.core.models import MessageBatch, StageLocation
from bend_ingest.ingest.stats import StatsRecorder
from bend_ingest.ingest.transformer import Transformer
from bend_ingest.observability.metrics import MetricsCollector, stage_duration_seconds, track_duration
from bend_ingest.warehouse.connection import StoreClient

logger = logging.getLogger(__name__)

TEMP_FILE_PREFIX = "databend-ingest-"
TEMP_FILE_SUFFIX = ".ndjson"

CREATE_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS {table} "
    "(uuid String, raw_data json, record_metadata json, add_time timestamp)"
)

COPY_INTO_SQL = (
    "COPY INTO {table} FROM {stage} "
    "FILE_FORMAT = (type = NDJSON missing_field_as = FIELD_DEFAULT COMPRESSION = AUTO) "
    "PURGE = {purge} FORCE = {force} DISABLE_VARIANT_CHECK = {disable_variant_check}"
)


def _sql_bool(value: bool) -> str:
    return "true" if value else "false"


class DatabendIngester:
    """
    Loads message batches into the target table through a stage.

    Safe to call from several workers at once: every call writes its own
    uniquely named temporary file and stage path, and the stats recorder is
    thread-safe.
    """

    def __init__(
        self,
        config: IngestConfig,
        store: StoreClient,
        stats: StatsRecorder | None = None,
        transformer: Transformer | None = None,
        metrics: MetricsCollector | None = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        """
        Initialize ingester.

        Args:
            config: Process configuration
            store: Databend client (or a test double)
            stats: Shared cumulative counters
            transformer: NDJSON line builder
            metrics: Prometheus metrics collector
            wall_clock: Source of the unix time used in stage paths
        """
        self.config = config
        self.store = store
        self.stats = stats or StatsRecorder()
        self.transformer = transformer or Transformer()
        self.metrics = metrics or MetricsCollector()
        self._wall_clock = wall_clock

    def create_target_table(self) -> None:
        """
        Create the raw target table if it does not exist.

        Raises:
            DDLError: If the statement fails; nothing can be loaded without the table
        """
        statement = CREATE_TABLE_SQL.format(table=self.config.databend_table)
        try:
            self.store.execute(statement)
        except Exception as e:
            logger.error(f"exec '{statement}' failed, err: {e}")
            raise DDLError(f"Failed to create table {self.config.databend_table}: {e}", statement) from e

    def ingest(self, batch: MessageBatch | None) -> None:
        """
        Load one batch into the target table.

        Args:
            batch: Messages to load; None or an empty batch is a no-op

        Raises:
            TransformError, FileIOError, UploadError, LoadError: The batch was not
                loaded and its offsets must not be committed
        """
        if batch is None or batch.is_empty:
            return

        start_time = time.monotonic()
        try:
            with track_duration(stage_duration_seconds, stage="transform"):
                lines = self.transformer.to_envelope_lines(batch, self.config.needs_transform)

            with self._batch_file(lines) as (file_name, bytes_size):
                stage = self._upload_to_stage(file_name, bytes_size)
                self._copy_into(stage)
        except IngestError as e:
            logger.error(
                f"ingest of {len(batch)} rows failed at {e.stage}: {e.message}",
                extra={"stage": e.stage, "rows": len(batch)},
            )
            self.metrics.record_batch_failed(self.config.databend_table, e.stage)
            raise

        elapsed = time.monotonic() - start_time
        row_count = len(lines)
        self.stats.record_metric(bytes_size, row_count)
        self.metrics.record_batch_loaded(self.config.databend_table, row_count, bytes_size, elapsed)

        rate = elapsed if elapsed > 0 else float("inf")
        logger.info(
            f"ingest {row_count} rows ({row_count / rate:f} rows/s), "
            f"{bytes_size} bytes ({bytes_size / rate:f} bytes/s)",
            extra={"rows": row_count, "bytes": bytes_size, "duration_seconds": round(elapsed, 3)},
        )

    @contextmanager
    def _batch_file(self, lines: list[str]) -> Iterator[tuple[str, int]]:
        """
        Write lines to a fresh temporary NDJSON file.

        The file is flushed to disk and closed before it is yielded, and
        removed when the block exits, whatever the outcome.

        Yields:
            (file path, number of bytes written)
        """
        file_name = None
        try:
            with track_duration(stage_duration_seconds, stage="generate_file"):
                with tempfile.NamedTemporaryFile(
                    mode="wb",
                    prefix=TEMP_FILE_PREFIX,
                    suffix=TEMP_FILE_SUFFIX,
                    dir=self.config.temp_dir,
                    delete=False,
                ) as output_file:
                    file_name = output_file.name
                    bytes_sum = 0
                    for line in lines:
                        data = (line + "\n").encode("utf-8")
                        output_file.write(data)
                        bytes_sum += len(data)
                    output_file.flush()
                    os.fsync(output_file.fileno())
        except OSError as e:
            self._remove_file(file_name)
            raise FileIOError(f"write batch file failed: {e}") from e
        except BaseException:
            self._remove_file(file_name)
            raise

        try:
            yield file_name, bytes_sum
        finally:
            self._remove_file(file_name)

    @staticmethod
    def _remove_file(file_name: str | None) -> None:
        if file_name is None:
            return
        try:
            os.remove(file_name)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"delete batch insert file failed: {e}")

    def _stage_for(self, file_name: str) -> StageLocation:
        return StageLocation(
            name="~",
            path=f"batch/{int(self._wall_clock())}-{os.path.basename(file_name)}",
        )

    def _upload_to_stage(self, file_name: str, size: int) -> StageLocation:
        """
        Stream the batch file to a new stage location.

        Raises:
            UploadError: If the file cannot be read or the upload fails
        """
        stage = self._stage_for(file_name)
        try:
            with track_duration(stage_duration_seconds, stage="upload"):
                with open(file_name, "rb") as f:
                    self.store.upload_to_stage(stage, f, size)
        except Exception as e:
            raise UploadError(f"upload {file_name} to {stage} failed: {e}") from e
        return stage

    def copy_into_statement(self, stage: StageLocation) -> str:
        return COPY_INTO_SQL.format(
            table=self.config.databend_table,
            stage=stage,
            purge=_sql_bool(self.config.copy_purge),
            force=_sql_bool(self.config.copy_force),
            disable_variant_check=_sql_bool(self.config.disable_variant_check),
        )

    def _copy_into(self, stage: StageLocation) -> None:
        """
        Load the staged file into the target table; blocks until Databend answers.

        Raises:
            LoadError: Carrying the executed statement
        """
        statement = self.copy_into_statement(stage)
        try:
            with track_duration(stage_duration_seconds, stage="copy_into"):
                self.store.execute(statement)
        except Exception as e:
            logger.error(f"exec '{statement}' failed, err: {e}")
            raise LoadError(f"{e} (statement: {statement})", statement) from e
