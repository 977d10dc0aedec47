"""
Kafka consumption: sources, consume workers and the pipeline running them.
"""

from .pipeline import IngestPipeline
from .worker import ConsumeWorker, WorkerState

__all__ = [
    "IngestPipeline",
    "ConsumeWorker",
    "WorkerState",
]
