"""
tests.test_logging

Tests for the structured log sink.

Responsibilities:
- Record shape for json and text formats, level filtering and fallbacks.
- Error records always carry a stack trace.
- Sink fan-out, failure isolation and re-configuration.
- Async logging with explicit drain, and concurrent writers.
"""

from __future__ import annotations

import io
import json
import threading

import pytest
from structlog.contextvars import bound_contextvars

from tests.conftest import read_records
from tracelog.observability.logging import (
    InvalidSinkError,
    LogConfig,
    LogSink,
    parse_level,
    resolve_level,
)


class BrokenWriter:
    def write(self, _: str) -> int:
        raise OSError("disk on fire")

    def flush(self) -> None:
        pass


class TestRecordShape:
    def test_json_record_has_message_level_timestamp_and_flat_attributes(self, sink, buffer) -> None:
        sink.info("hello", {"user": "alice"}, attempt=2)

        (rec,) = read_records(buffer)
        assert rec["message"] == "hello"
        assert rec["level"] == "info"
        assert rec["timestamp"]
        assert rec["user"] == "alice"
        assert rec["attempt"] == 2
        assert "stack_trace" not in rec

    def test_text_format_renders_logfmt(self) -> None:
        buf = io.StringIO()
        sink = LogSink(LogConfig(format="text"), stream=buf)
        sink.info("hello world", user="alice")

        line = buf.getvalue().strip()
        assert line.startswith("timestamp=")
        assert "level=info" in line
        assert 'message="hello world"' in line
        assert "user=alice" in line

    def test_unrecognized_format_falls_back_to_text(self) -> None:
        buf = io.StringIO()
        sink = LogSink(LogConfig(format="yaml"), stream=buf)
        sink.info("hi")

        line = buf.getvalue().strip()
        assert "message=hi" in line
        with pytest.raises(json.JSONDecodeError):
            json.loads(line)

    def test_service_name_is_added(self) -> None:
        buf = io.StringIO()
        sink = LogSink(LogConfig(format="json"), stream=buf, service_name="billing")
        sink.info("hi")
        assert read_records(buf)[0]["service"] == "billing"

    def test_bound_contextvars_are_merged(self, sink, buffer) -> None:
        with bound_contextvars(trace_id="ctx-1"):
            sink.info("inside")
        sink.info("outside")

        inside, outside = read_records(buffer)
        assert inside["trace_id"] == "ctx-1"
        assert "trace_id" not in outside

    def test_event_attribute_is_kept_under_fields_prefix(self, sink, buffer) -> None:
        sink.info("user action", {"event": "login", "user": "bob"})
        sink.error("failed action", event="logout")

        action, failed = read_records(buffer)
        assert action["message"] == "user action"
        assert action["fields.event"] == "login"
        assert action["user"] == "bob"
        assert failed["fields.event"] == "logout"

    @pytest.mark.parametrize("key", ["message", "level", "timestamp", "service"])
    def test_reserved_attribute_names_survive(self, buffer, key: str) -> None:
        sink = LogSink(LogConfig(format="json"), stream=buffer, service_name="billing")
        sink.info("outer", {key: "custom"})

        (rec,) = read_records(buffer)
        assert rec["fields." + key] == "custom"
        assert rec["message"] == "outer"
        assert rec["level"] == "info"
        assert rec["service"] == "billing"

    def test_message_keyword_is_an_attribute(self, sink, buffer) -> None:
        sink.warn("outer", message="inner")
        assert read_records(buffer)[0]["fields.message"] == "inner"

    def test_caller_mapping_is_not_mutated(self, sink) -> None:
        fields = {"k": "v"}
        sink.error("boom", fields)
        assert fields == {"k": "v"}


class TestLevels:
    def test_records_below_minimum_are_dropped(self) -> None:
        buf = io.StringIO()
        sink = LogSink(LogConfig(format="json", level="warn"), stream=buf)
        sink.debug("d")
        sink.info("i")
        sink.warn("w")
        sink.error("e")

        assert [r["message"] for r in read_records(buf)] == ["w", "e"]
        assert [r["level"] for r in read_records(buf)] == ["warning", "error"]

    def test_unknown_level_falls_back_to_info_with_one_warning(self) -> None:
        buf = io.StringIO()
        sink = LogSink(LogConfig(format="json", level="verbose"), stream=buf)
        sink.debug("hidden")
        sink.info("shown")

        warning, shown = read_records(buf)
        assert sink.level == 20
        assert warning["level"] == "warning"
        assert warning["requested_level"] == "verbose"
        assert shown["message"] == "shown"

    @pytest.mark.parametrize(
        "name,expected",
        [("DEBUG", 10), ("info", 20), ("warn", 30), ("Warning", 30), ("error", 40)],
    )
    def test_parse_level(self, name: str, expected: int) -> None:
        assert parse_level(name) == expected

    def test_resolve_level_never_raises(self) -> None:
        assert resolve_level("nope") == (20, False)
        assert resolve_level("") == (20, False)
        assert resolve_level(None) == (20, False)

    def test_log_rejects_unknown_level(self, sink) -> None:
        with pytest.raises(ValueError):
            sink.log("loud", "x")


class TestErrorRecords:
    @pytest.mark.parametrize("message", ["", "plain", "multi\nline"])
    def test_error_always_carries_stack_trace(self, sink, buffer, message: str) -> None:
        sink.error(message)

        (rec,) = read_records(buffer)
        assert rec["level"] == "error"
        assert rec["stack_trace"]
        # The trace ends at the caller, not inside the sink.
        assert "test_error_always_carries_stack_trace" in rec["stack_trace"]

    def test_generic_log_at_error_level_carries_stack_trace(self, sink, buffer) -> None:
        sink.log("error", "via log")
        assert read_records(buffer)[0]["stack_trace"]


class TestAddSink:
    def test_none_writer_raises_and_leaves_config_untouched(self, sink, buffer) -> None:
        before = sink.sink_count
        with pytest.raises(InvalidSinkError):
            sink.add_sink(None)
        assert sink.sink_count == before

        sink.info("still here")
        assert read_records(buffer)[0]["message"] == "still here"

    def test_writer_without_write_method_is_invalid(self, sink) -> None:
        with pytest.raises(InvalidSinkError):
            sink.add_sink(object())  # type: ignore[arg-type]

    def test_invalid_sink_error_is_a_value_error(self) -> None:
        assert issubclass(InvalidSinkError, ValueError)

    def test_records_fan_out_to_every_writer(self, sink, buffer) -> None:
        extra = io.StringIO()
        sink.add_sink(extra)
        sink.info("both")

        assert read_records(buffer)[0]["message"] == "both"
        assert read_records(extra)[0]["message"] == "both"
        assert sink.sink_count == 2

    def test_failing_writer_does_not_block_others(self, sink, buffer) -> None:
        healthy = io.StringIO()
        sink.add_sink(BrokenWriter())
        sink.add_sink(healthy)

        sink.info("payload")

        assert [r["message"] for r in read_records(healthy)] == ["payload"]
        primary = read_records(buffer)
        assert primary[0]["message"] == "payload"
        assert primary[1]["message"] == "Log sink write failed"
        assert "disk on fire" in primary[1]["error"]

    def test_reconfigure_replaces_added_sinks(self, sink, buffer) -> None:
        extra = io.StringIO()
        sink.add_sink(extra)
        sink.configure(LogConfig(format="json", level="info"), stream=buffer)
        sink.info("after")

        assert sink.sink_count == 1
        assert extra.getvalue() == ""
        assert read_records(buffer)[-1]["message"] == "after"


class TestFileDestination:
    def test_records_land_in_file(self, tmp_path) -> None:
        path = tmp_path / "logs" / "app.log"
        sink = LogSink(LogConfig(format="json", destination=str(path), max_size=1))
        sink.info("to file", n=1)
        sink.shutdown()

        (line,) = path.read_text().splitlines()
        assert json.loads(line)["n"] == 1


class TestAsync:
    def test_flush_waits_for_async_records(self, sink, buffer) -> None:
        for i in range(20):
            sink.log_async("info", "async", i=i)
        sink.flush()

        assert sorted(r["i"] for r in read_records(buffer)) == list(range(20))

    def test_async_error_keeps_caller_stack_and_context(self, sink, buffer) -> None:
        with bound_contextvars(trace_id="async-1"):
            sink.log_async("error", "later")
        sink.flush()

        (rec,) = read_records(buffer)
        assert rec["trace_id"] == "async-1"
        assert "test_async_error_keeps_caller_stack_and_context" in rec["stack_trace"]

    def test_records_after_shutdown_are_dropped(self, buffer) -> None:
        sink = LogSink(LogConfig(format="json"), stream=buffer)
        sink.shutdown()
        sink.info("late")
        sink.log_async("info", "late async")
        sink.flush()

        assert sink.closed is True
        assert buffer.getvalue() == ""

    def test_shutdown_drains_pending_records(self, buffer) -> None:
        sink = LogSink(LogConfig(format="json"), stream=buffer)
        for i in range(5):
            sink.log_async("info", "pending", i=i)
        sink.shutdown()

        assert len(read_records(buffer)) == 5


class TestConcurrency:
    def test_parallel_writers_produce_one_intact_record_each(self, sink, buffer) -> None:
        extra = io.StringIO()
        sink.add_sink(extra)
        barrier = threading.Barrier(100)

        def worker(n: int) -> None:
            barrier.wait()
            sink.info("parallel", {"worker": n, "payload": "x" * 512})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(100)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for buf in (buffer, extra):
            records = read_records(buf)
            assert len(records) == 100
            assert sorted(r["worker"] for r in records) == list(range(100))
            assert all(r["payload"] == "x" * 512 for r in records)


# --- Module Notes -----------------------------------------------------------
# Rotation mechanics are covered separately in tests/test_rotation.py.
