"""Tests for structured logging with trace propagation."""

from __future__ import annotations

import io
import json
from pathlib import Path

from cidcache.core.logging import configure_logging, log_context, logger


def _read_records(stream: io.StringIO) -> list[dict[str, object]]:
    stream.seek(0)
    lines = [line for line in stream.getvalue().splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


def test_structured_log_contains_trace_and_context() -> None:
    buffer = io.StringIO()
    configure_logging("INFO", console_stream=buffer)

    with log_context(trace_id="trace-123", backend="durable", request_id="req-42"):
        logger.bind(error_code="DURABLE_UNAVAILABLE").warning("durable get failed", cid="bafy1")

    records = _read_records(buffer)
    assert len(records) == 1
    record = records[0]
    assert record["level"] == "WARNING"
    assert record["trace_id"] == "trace-123"
    assert record["backend"] == "durable"
    assert record["error_code"] == "DURABLE_UNAVAILABLE"
    assert record["context"]["request_id"] == "req-42"
    assert record["context"]["cid"] == "bafy1"


def test_trace_id_propagates_within_context() -> None:
    buffer = io.StringIO()
    configure_logging("INFO", console_stream=buffer)

    with log_context() as trace_id:
        logger.info("first event")
        logger.info("second event")

    logger.info("outside context")

    records = _read_records(buffer)
    assert len(records) == 3
    assert records[0]["trace_id"] == records[1]["trace_id"] == trace_id
    assert records[2]["trace_id"] != trace_id


def test_level_filters_records() -> None:
    buffer = io.StringIO()
    configure_logging("WARNING", console_stream=buffer)

    logger.info("dropped")
    logger.warning("kept")

    records = _read_records(buffer)
    assert [record["message"] for record in records] == ["kept"]


def test_file_sink_writes_json_lines(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "cidcache.jsonl"
    configure_logging("INFO", console_output=False, file_output=True, file_path=str(log_file))

    with log_context(trace_id="file-trace"):
        logger.info("written to file")

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["trace_id"] == "file-trace"
