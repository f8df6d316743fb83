"""
tests.conftest

Shared fixtures for sink and middleware tests.

Responsibilities:
- Provide a JSON log sink writing into an in-memory buffer.
- Parse buffered output into records.
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from typing import Any

import pytest

from tracelog.observability.logging import LogConfig, LogSink


def read_records(buf: io.StringIO) -> list[dict[str, Any]]:
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


@pytest.fixture
def buffer() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def sink(buffer: io.StringIO) -> Iterator[LogSink]:
    s = LogSink(LogConfig(format="json", level="debug"), stream=buffer)
    yield s
    s.shutdown()


# --- Module Notes -----------------------------------------------------------
# Every test gets its own sink; nothing in the package relies on global logger state.
