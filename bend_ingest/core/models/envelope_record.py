"""
EnvelopeRecord model wrapping a raw payload with its Kafka provenance.
"""

from pydantic import BaseModel, Field


class RecordMetadata(BaseModel):
    """
    Provenance of a wrapped payload. Every value is rendered as a string.

    Attributes:
        topic: Source topic
        partition: Source partition id
        offset: Offset within the partition
        key: Message key ("" when absent)
        create_time: Broker timestamp in RFC3339 nano format
    """

    topic: str
    partition: str
    offset: str
    key: str = ""
    create_time: str


class EnvelopeRecord(BaseModel):
    """
    One NDJSON line loaded into the raw target table.

    Attributes:
        uuid: Freshly generated identifier for this record
        record_metadata: Where the payload came from
        add_time: Ingestion wall-clock time in RFC3339 nano format
        raw_data: The payload as JSON text, embedded verbatim on serialization
    """

    uuid: str = Field(..., min_length=1)
    record_metadata: RecordMetadata
    add_time: str
    raw_data: str

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "uuid": "1b4e28ba-2fa1-11d2-883f-0016d3cca427",
                "record_metadata": {
                    "topic": "orders",
                    "partition": "3",
                    "offset": "1042",
                    "key": "order-1042",
                    "create_time": "2025-11-17T08:30:00.123Z"
                },
                "add_time": "2025-11-17T08:30:05.412Z",
                "raw_data": '{"order_id": 1042, "amount": 99.99}'
            }
        }

    def to_ndjson_line(self) -> str:
        """
        Serialize as a single JSON object line.

        raw_data is spliced in as JSON rather than as a quoted string, so the
        stored column holds the original document.
        """
        head = self.model_dump_json(exclude={"raw_data"})
        return f'{head[:-1]},"raw_data":{self.raw_data}}}'
