"""
Core data models for the Kafka to Databend ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .envelope_record import EnvelopeRecord, RecordMetadata
from .ingest_stats import IngestStats, ThroughputStats
from .message import Message
from .message_batch import MessageBatch
from .stage_location import StageLocation

__all__ = [
    "Message",
    "MessageBatch",
    "RecordMetadata",
    "EnvelopeRecord",
    "StageLocation",
    "IngestStats",
    "ThroughputStats",
]
