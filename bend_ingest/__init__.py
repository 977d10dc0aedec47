"""
bend-ingest: batch Kafka messages into Databend through staged COPY INTO loads.
"""

__version__ = "0.1.0"
