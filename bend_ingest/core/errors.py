"""
Error taxonomy for the ingestion pipeline.

Startup errors (ConfigError, DDLError) are fatal: the process must not begin
consuming. Per-batch errors (IngestError subclasses) are raised by the
ingester and handled by the consume worker, which never commits offsets for
a failed batch.
"""


class BendIngestError(Exception):
    """Base class for all bend-ingest errors."""
    pass


class ConfigError(BendIngestError):
    """Raised when settings are missing or invalid."""
    pass


class DDLError(BendIngestError):
    """Raised when the target table could not be created."""

    def __init__(self, message: str, statement: str | None = None):
        self.statement = statement
        super().__init__(message)


class BrokerError(BendIngestError):
    """Raised when subscribing to, polling or committing on Kafka fails."""
    pass


class IngestError(BendIngestError):
    """
    Raised when a batch could not be loaded.

    Attributes:
        stage: Pipeline step that failed (transform, generate_file, upload, copy_into)
    """

    stage = "ingest"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"[{self.stage}] {message}")


class TransformError(IngestError):
    """Raised when a raw payload cannot be wrapped into an envelope record."""

    stage = "transform"


class FileIOError(IngestError):
    """Raised when the temporary batch file cannot be created or written."""

    stage = "generate_file"


class UploadError(IngestError):
    """Raised when the batch file cannot be uploaded to the stage."""

    stage = "upload"


class LoadError(IngestError):
    """Raised when the COPY INTO statement fails."""

    stage = "copy_into"

    def __init__(self, message: str, statement: str | None = None):
        self.statement = statement
        super().__init__(message)
