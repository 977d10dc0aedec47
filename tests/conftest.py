"""
Pytest configuration and fixtures for bend-ingest tests

This module provides shared fixtures for unit and integration tests: an
in-memory Databend store, a scripted Kafka source, message and config
factories, a controllable clock and a Kafka container.
"""
import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Generator, Iterable, Optional

import pytest

from bend_ingest.core.config import IngestConfig
from bend_ingest.core.models import Message, StageLocation


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# TEST DOUBLES
# =======================

class FakeStore:
    """
    In-memory stand-in for DatabendClient.

    Records every statement and upload. Failures are scripted by setting
    upload_failures / copy_failures to the number of calls that must fail,
    or ddl_error to the exception CREATE TABLE raises.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.statements: list[str] = []
        self.uploads: list[tuple[str, bytes]] = []
        self.uploaded_files: list[str] = []
        self.tables: set[str] = set()
        self.upload_failures = 0
        self.copy_failures = 0
        self.ddl_error: Optional[Exception] = None

    def execute(self, statement: str) -> int:
        with self._lock:
            self.statements.append(statement)

            if statement.startswith("CREATE TABLE IF NOT EXISTS"):
                if self.ddl_error is not None:
                    raise self.ddl_error
                self.tables.add(statement.split()[5])
                return 0

            if statement.startswith("COPY INTO"):
                if self.copy_failures:
                    self.copy_failures -= 1
                    raise RuntimeError("copy into failed: table not found")
                return 1

        return 0

    def upload_to_stage(self, stage: StageLocation, stream, size: int) -> None:
        with self._lock:
            if self.upload_failures:
                self.upload_failures -= 1
                raise ConnectionError("presigned upload refused")

        data = stream.read()
        assert len(data) == size

        with self._lock:
            self.uploads.append((str(stage), data))
            self.uploaded_files.append(stream.name)

    @property
    def copy_statements(self) -> list[str]:
        with self._lock:
            return [s for s in self.statements if s.startswith("COPY INTO")]

    def uploaded_lines(self) -> list[str]:
        with self._lock:
            return [
                line
                for _, data in self.uploads
                for line in data.decode("utf-8").splitlines()
            ]


class FakeSource:
    """
    Scripted MessageSource.

    Returns the queued messages one per poll, then None. Queued exceptions in
    poll_errors are raised by the next polls before any message.
    """

    def __init__(self, messages: Iterable[Message] = ()):
        self._lock = threading.Lock()
        self._queue = deque(messages)
        self.poll_errors: deque = deque()
        self.commits: list[dict] = []
        self.rewinds: list[dict] = []
        self.commit_error: Optional[Exception] = None
        self.rewind_error: Optional[Exception] = None
        self.closed = False

    def add(self, *messages: Message) -> None:
        with self._lock:
            self._queue.extend(messages)

    def poll(self, timeout: float) -> Optional[Message]:
        with self._lock:
            if self.poll_errors:
                raise self.poll_errors.popleft()
            if self._queue:
                return self._queue.popleft()
        time.sleep(min(timeout, 0.005))
        return None

    def commit(self, offsets) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.commits.append(dict(offsets))

    def rewind(self, offsets) -> None:
        if self.rewind_error is not None:
            raise self.rewind_error
        self.rewinds.append(dict(offsets))

    def close(self) -> None:
        self.closed = True

    @property
    def drained(self) -> bool:
        with self._lock:
            return not self._queue


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll predicate until it holds or timeout seconds passed"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# =======================
# FACTORY FIXTURES
# =======================

@pytest.fixture
def fake_store() -> FakeStore:
    """Fresh in-memory store"""
    return FakeStore()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock starting at an arbitrary monotonic value"""
    return FakeClock()


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    """Factory for scripted message sources"""
    return FakeSource


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """
    Factory for Kafka messages

    Returns:
        Callable taking offset plus optional payload/partition/topic/key/create_time
    """
    def _make(
        offset: int = 0,
        payload: bytes = b'{"id": 1, "name": "alice"}',
        partition: int = 0,
        topic: str = "test",
        key: Optional[bytes] = None,
        create_time: Optional[datetime] = None,
    ) -> Message:
        return Message(
            topic=topic,
            partition=partition,
            offset=offset,
            key=key,
            payload=payload,
            create_time=create_time or datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=timezone.utc),
        )

    return _make


@pytest.fixture
def make_config(tmp_path) -> Callable[..., IngestConfig]:
    """
    Factory for configs writing batch files under tmp_path

    Retries back off for zero seconds and polls return quickly; keyword
    arguments override any field.
    """
    def _make(**overrides) -> IngestConfig:
        settings = {
            "temp_dir": str(tmp_path),
            "poll_timeout_seconds": 0.01,
            "retry_backoff_seconds": 0.0,
            "retry_backoff_max_seconds": 0.0,
        }
        settings.update(overrides)
        return IngestConfig(**settings)

    return _make


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Expose wait_until to tests"""
    return wait_until


# =======================
# KAFKA FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def kafka_container() -> Generator:
    """
    Start Kafka container for streaming integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        KafkaContainer instance
    """
    kafka_module = pytest.importorskip("testcontainers.kafka")

    container = kafka_module.KafkaContainer(image="confluentinc/cp-kafka:7.6.0")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Kafka container unavailable: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def kafka_bootstrap_servers(kafka_container) -> str:
    """
    Get Kafka bootstrap servers for a test

    Args:
        kafka_container: Kafka container fixture

    Returns:
        Bootstrap servers connection string
    """
    return kafka_container.get_bootstrap_server()
