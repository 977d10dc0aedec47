"""
Batch accumulation, transformation and staged bulk-load ingestion.
"""

from .accumulator import BatchAccumulator
from .ingester import DatabendIngester
from .stats import StatsRecorder
from .transformer import Transformer

__all__ = [
    "BatchAccumulator",
    "DatabendIngester",
    "StatsRecorder",
    "Transformer",
]
