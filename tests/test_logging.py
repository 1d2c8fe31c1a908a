"""Tests for structured logging: entries, handlers, config and viewer."""

import json
import logging
from datetime import datetime, timedelta

import pytest

from synax.logging import (
    ConnectivityLogEntry,
    LogConfig,
    SyncLogEntry,
    connectivity_logger,
    get_config,
    set_config,
    sync_logger,
)
from synax.logging.handlers import JSONLRotatingHandler, create_jsonl_logger
from synax.logging.viewer import (
    format_entry_line,
    parse_since,
    percentile,
    query_logs,
    read_jsonl,
    summarize_cycles,
)


def _write_lines(path, entries):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for entry in entries:
            f.write((entry if isinstance(entry, str) else json.dumps(entry)) + "\n")


class TestEntries:
    """Tests for log entry dataclasses."""

    def test_sync_entry_round_trip(self):
        """to_dict/from_dict keep every field and ignore extras."""
        entry = SyncLogEntry(
            timestamp="2026-01-01T10:00:00",
            cycle_id="c1",
            event="item_failed",
            record_id=4,
            error="HTTP 500",
            error_type="RemoteRejectedError",
        )
        data = entry.to_dict()
        data["_source"] = "sync"
        assert SyncLogEntry.from_dict(data) == entry

    def test_to_json_is_single_object(self):
        """to_json renders one JSON object."""
        entry = ConnectivityLogEntry(timestamp="2026-01-01T10:00:00", online=True, triggered_sync=True)
        assert json.loads(entry.to_json())["triggered_sync"] is True


class TestHandlers:
    """Tests for the JSONL rotating handler."""

    def test_json_messages_written_verbatim(self, tmp_path):
        """Messages that are JSON objects are written as they are."""
        logger = create_jsonl_logger("synax.test.verbatim", tmp_path / "out.jsonl")
        logger.info(json.dumps({"event": "cycle_start", "total": 3}))

        [line] = (tmp_path / "out.jsonl").read_text().splitlines()
        assert json.loads(line) == {"event": "cycle_start", "total": 3}

    def test_plain_messages_wrapped(self, tmp_path):
        """Plain text is wrapped with level and logger name."""
        logger = create_jsonl_logger("synax.test.plain", tmp_path / "out.jsonl")
        logger.warning("disk nearly full")

        data = json.loads((tmp_path / "out.jsonl").read_text())
        assert data["message"] == "disk nearly full"
        assert data["level"] == "WARNING"
        assert data["logger"] == "synax.test.plain"

    def test_recreating_logger_replaces_handlers(self, tmp_path):
        """Creating the same logger twice leaves one file handler."""
        create_jsonl_logger("synax.test.dup", tmp_path / "a.jsonl")
        logger = create_jsonl_logger("synax.test.dup", tmp_path / "b.jsonl")
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_rotation(self, tmp_path):
        """Files roll over at max_bytes."""
        handler = JSONLRotatingHandler(tmp_path / "r.jsonl", max_bytes=200, backup_count=2)
        logger = logging.getLogger("synax.test.rotate")
        logger.handlers.clear()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
        for i in range(20):
            logger.info(json.dumps({"i": i, "pad": "x" * 40}))
        handler.close()
        assert (tmp_path / "r.jsonl.1").exists()


class TestLogConfig:
    """Tests for LogConfig."""

    def test_from_env(self, monkeypatch, tmp_path):
        """Environment variables override defaults."""
        monkeypatch.setenv("SYNAX_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SYNAX_LOG_DIR", str(tmp_path / "elsewhere"))
        monkeypatch.setenv("SYNAX_LOG_MAX_SIZE_MB", "2")
        config = LogConfig.from_env()
        assert config.sync_level == "DEBUG"
        assert config.connectivity_level == "DEBUG"
        assert config.log_dir == tmp_path / "elsewhere"
        assert config.max_file_size_bytes == 2 * 1024 * 1024

    def test_bad_size_ignored(self, monkeypatch):
        """A non-numeric size keeps the default."""
        monkeypatch.setenv("SYNAX_LOG_MAX_SIZE_MB", "big")
        assert LogConfig.from_env().max_file_size_bytes == 10 * 1024 * 1024

    def test_set_config_redirects_loggers(self, tmp_path):
        """Lazy loggers follow a newly set config."""
        set_config(LogConfig(log_dir=tmp_path / "first"))
        sync_logger.info(json.dumps({"event": "a"}))
        set_config(LogConfig(log_dir=tmp_path / "second"))
        sync_logger.info(json.dumps({"event": "b"}))
        connectivity_logger.info(json.dumps({"online": True}))

        assert (tmp_path / "first" / "sync.jsonl").read_text().count("\n") == 1
        assert (tmp_path / "second" / "sync.jsonl").read_text().count("\n") == 1
        assert get_config().connectivity_log_path.exists()


class TestViewer:
    """Tests for reading and summarizing logs."""

    def test_parse_since_relative(self):
        """Relative specs count back from now."""
        result = parse_since("2h")
        expected = datetime.now() - timedelta(hours=2)
        assert abs((result - expected).total_seconds()) < 5

    def test_parse_since_iso(self):
        """ISO timestamps are accepted as-is."""
        assert parse_since("2026-01-11T10:00:00") == datetime(2026, 1, 11, 10, 0, 0)

    def test_parse_since_invalid(self):
        """Anything else is a ValueError."""
        with pytest.raises(ValueError, match="Invalid time format"):
            parse_since("yesterday")

    def test_read_jsonl_skips_bad_lines(self, tmp_path):
        """Malformed lines are ignored."""
        path = tmp_path / "x.jsonl"
        _write_lines(path, [{"timestamp": "2026-01-01T00:00:00", "n": 1}, "{broken", "", {"timestamp": "2026-01-02T00:00:00", "n": 2}])
        assert [e["n"] for e in read_jsonl(path)] == [1, 2]

    def test_read_jsonl_since(self, tmp_path):
        """Entries before since are filtered."""
        path = tmp_path / "x.jsonl"
        _write_lines(path, [{"timestamp": "2026-01-01T00:00:00", "n": 1}, {"timestamp": "2026-01-03T00:00:00", "n": 2}])
        assert [e["n"] for e in read_jsonl(path, since=datetime(2026, 1, 2))] == [2]

    def test_read_missing_file(self, tmp_path):
        """A missing file yields nothing."""
        assert list(read_jsonl(tmp_path / "nope.jsonl")) == []

    def test_query_logs_filters_and_sorts(self):
        """query_logs merges both logs newest first and applies filters."""
        config = get_config()
        _write_lines(config.sync_log_path, [
            {"timestamp": "2026-01-01T10:00:00", "cycle_id": "c1", "event": "cycle_start"},
            {"timestamp": "2026-01-01T10:00:02", "cycle_id": "c1", "event": "item_failed"},
            {"timestamp": "2026-01-01T11:00:00", "cycle_id": "c2", "event": "cycle_start"},
        ])
        _write_lines(config.connectivity_log_path, [
            {"timestamp": "2026-01-01T10:00:01", "online": True},
        ])

        everything = query_logs()
        assert [e["timestamp"][-8:] for e in everything] == ["11:00:00", "10:00:02", "10:00:01", "10:00:00"]
        assert everything[2]["_source"] == "connectivity"

        assert len(query_logs(log_type="sync", cycle_id="c1")) == 2
        assert len(query_logs(log_type="sync", event="cycle_start")) == 2
        assert len(query_logs(limit=1)) == 1

    def test_percentile(self):
        """Linear interpolation between ranks."""
        assert percentile([], 50) == 0.0
        assert percentile([10, 20, 30, 40], 50) == 25.0
        assert percentile([5], 95) == 5

    def test_summarize_cycles(self):
        """Cycle summary counts outcomes and error types."""
        entries = [
            {"event": "cycle_complete", "duration_ms": 100},
            {"event": "cycle_complete", "duration_ms": 300},
            {"event": "cycle_aborted"},
            {"event": "item_synced"},
            {"event": "item_synced"},
            {"event": "item_failed", "error_type": "RemoteRejectedError"},
            {"event": "item_failed", "error_type": "RemoteRejectedError"},
            {"event": "item_failed", "error_type": "UnmappedMutationError"},
        ]
        summary = summarize_cycles(entries)
        assert summary["cycles_completed"] == 2
        assert summary["cycles_aborted"] == 1
        assert summary["items_synced"] == 2
        assert summary["items_failed"] == 3
        assert summary["failure_types"] == {"RemoteRejectedError": 2, "UnmappedMutationError": 1}
        assert summary["duration_p50_ms"] == 200.0

    def test_format_entry_line(self):
        """Display lines carry the essentials of each entry."""
        sync_line = format_entry_line({
            "_source": "sync",
            "timestamp": "2026-01-01T10:00:00.123",
            "cycle_id": "abcdef123456",
            "event": "item_failed",
            "entity_type": "room",
            "action": "update",
            "entity_id": "r1",
            "error": "HTTP 500",
        })
        assert sync_line == "2026-01-01 10:00:00 [sync abcdef12] item_failed room/update r1 error=HTTP 500"

        conn_line = format_entry_line({
            "_source": "connectivity",
            "timestamp": "2026-01-01T10:00:00",
            "online": True,
            "triggered_sync": True,
        })
        assert conn_line == "2026-01-01 10:00:00 [connectivity] online (sync triggered)"
