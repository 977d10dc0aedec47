"""
Turns a batch of Kafka payloads into NDJSON lines.

When raw payloads must be wrapped, each line is an envelope record carrying
the message's provenance next to the original document. Otherwise payloads
are already envelope-shaped NDJSON and pass through unchanged.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from bend_ingest.core.errors import TransformError
from bend_ingest.core.models import EnvelopeRecord, Message, MessageBatch, RecordMetadata
from bend_ingest.utils.time_format import format_rfc3339_nano

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _decode(message: Message, what: str, data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TransformError(
            f"{what} of {message.topic}[{message.partition}]@{message.offset} is not valid UTF-8: {e}"
        ) from e


def _reject_constant(name: str) -> None:
    raise ValueError(f"{name} is not valid JSON")


def raw_data_json(text: str) -> str:
    """
    Render a payload as the JSON text stored in raw_data.

    Single-line JSON is kept verbatim. JSON spanning several lines is
    re-serialized compactly so the NDJSON framing holds. Anything else,
    including NaN and Infinity literals, is stored as a JSON string.
    """
    stripped = text.strip()
    try:
        document = json.loads(stripped, parse_constant=_reject_constant)
        if "\n" in stripped or "\r" in stripped:
            return json.dumps(document, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except ValueError:
        return json.dumps(text, ensure_ascii=False)
    return stripped


class Transformer:
    """Builds the NDJSON lines of a batch."""

    def __init__(
        self,
        clock: Callable[[], datetime] = _utc_now,
        uuid_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize transformer.

        Args:
            clock: Source of the add_time stamp
            uuid_factory: Source of per-record identifiers
        """
        self._clock = clock
        self._uuid_factory = uuid_factory

    def to_envelope_lines(self, batch: MessageBatch, needs_transform: bool) -> list[str]:
        """
        Produce one NDJSON line per message, in batch order.

        Args:
            batch: Messages to render
            needs_transform: Wrap raw payloads into envelope records

        Returns:
            Lines without trailing newlines

        Raises:
            TransformError: If a payload or key is not valid UTF-8
        """
        if not needs_transform:
            return [self._pass_through(message) for message in batch.messages]

        add_time = format_rfc3339_nano(self._clock())
        return [self.to_envelope(message, add_time).to_ndjson_line() for message in batch.messages]

    def to_envelope(self, message: Message, add_time: str) -> EnvelopeRecord:
        key = _decode(message, "key", message.key) if message.key is not None else ""
        text = _decode(message, "payload", message.payload)

        return EnvelopeRecord(
            uuid=self._uuid_factory(),
            record_metadata=RecordMetadata(
                topic=message.topic,
                partition=str(message.partition),
                offset=str(message.offset),
                key=key,
                create_time=format_rfc3339_nano(message.create_time),
            ),
            add_time=add_time,
            raw_data=raw_data_json(text),
        )

    def _pass_through(self, message: Message) -> str:
        text = _decode(message, "payload", message.payload)
        if text.endswith("\r\n"):
            return text[:-2]
        if text.endswith("\n"):
            return text[:-1]
        return text
