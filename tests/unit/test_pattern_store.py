"""Unit tests for the tool invocation pattern store."""

import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from toolmend.execution.error_classifier import ErrorCategory
from toolmend.execution.history_channel import HistoryChannel
from toolmend.execution.pattern_store import (
    InvocationOutcome,
    PatternStore,
    ToolInvocationRecord,
)


def _record(tool_id, parameters=None, success=True, **kwargs):
    return ToolInvocationRecord.create(tool_id, parameters or {}, success=success, **kwargs)


class TestToolInvocationRecord:
    def test_parameters_are_read_only(self):
        record = _record("readFile", {"path": "/a.txt"})
        with pytest.raises(TypeError):
            record.parameters["path"] = "/b.txt"

    def test_record_is_frozen(self):
        record = _record("readFile")
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.tool_id = "other"

    def test_caller_dict_is_copied(self):
        params = {"path": "/a.txt"}
        record = _record("readFile", params)
        params["path"] = "/changed"
        assert record.parameters["path"] == "/a.txt"

    def test_nested_values_are_copied(self):
        params = {"paths": ["/a.txt"], "options": {"encoding": "utf-8"}}
        record = _record("readFile", params)

        params["paths"].append("/other.txt")
        params["options"]["encoding"] = "latin-1"

        assert record.parameters["paths"] == ["/a.txt"]
        assert record.parameters["options"] == {"encoding": "utf-8"}

    def test_negative_duration_rejected(self):
        with pytest.raises(ValueError):
            InvocationOutcome(success=True, duration=-1)

    def test_naive_timestamp_assumed_utc(self):
        record = _record("readFile", timestamp=datetime(2024, 1, 1, 12, 0))
        assert record.timestamp.tzinfo is timezone.utc

    def test_to_dict(self):
        record = _record(
            "readFile",
            {"path": "/a"},
            success=False,
            duration=12,
            error_category=ErrorCategory.TIMEOUT,
            error_message="timed out",
        )
        data = record.to_dict()
        assert data["tool_id"] == "readFile"
        assert data["parameters"] == {"path": "/a"}
        assert data["outcome"]["success"] is False
        assert data["outcome"]["duration"] == 12
        assert data["outcome"]["error_category"] == "timeout"


class TestPatternStore:
    def test_initialize_empty_store(self, store):
        assert len(store) == 0
        assert store.query("readFile") == []

    def test_query_filters_by_tool_in_insertion_order(self, store):
        store.record(_record("readFile", {"path": "/1"}))
        store.record(_record("listFiles", {"path": "/"}))
        store.record(_record("readFile", {"path": "/2"}))

        results = store.query("readFile")
        assert [r.parameters["path"] for r in results] == ["/1", "/2"]
        assert all(r.tool_id == "readFile" for r in results)

    def test_sequence_is_assigned_monotonically(self, store):
        first = store.record(_record("a"))
        second = store.record(_record("b"))
        assert first.sequence < second.sequence

    def test_query_successful(self, store):
        store.record(_record("readFile", {"path": "/1"}, success=False))
        store.record(_record("readFile", {"path": "/2"}, success=True))
        successful = store.query_successful("readFile")
        assert len(successful) == 1
        assert successful[0].parameters["path"] == "/2"

    def test_clear(self, store):
        store.record(_record("readFile"))
        store.record(_record("listFiles"))
        store.clear()
        assert len(store) == 0
        assert store.query("readFile") == []
        assert store.query("listFiles") == []

    def test_clear_tool_keeps_other_tools(self, store):
        store.record(_record("readFile", {"path": "/1"}))
        store.record(_record("listFiles", {"path": "/"}))
        store.record(_record("readFile", {"path": "/2"}))

        assert store.clear_tool("readFile") == 2
        assert store.query("readFile") == []
        assert [r.parameters["path"] for r in store.query("listFiles")] == ["/"]

    def test_capacity_evicts_oldest(self):
        store = PatternStore(max_records=2, retention_seconds=None)
        store.record(_record("t", {"n": 1}))
        store.record(_record("t", {"n": 2}))
        store.record(_record("t", {"n": 3}))
        assert [r.parameters["n"] for r in store.query("t")] == [2, 3]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            PatternStore(max_records=0)

    def test_retention_window_prunes_old_records(self):
        now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        store = PatternStore(retention_seconds=3600, clock=lambda: now)
        store.record(_record("t", {"n": "old"}, timestamp=now - timedelta(hours=2)))
        store.record(_record("t", {"n": "new"}, timestamp=now - timedelta(minutes=5)))
        assert [r.parameters["n"] for r in store.query("t")] == ["new"]

    def test_retention_disabled_with_zero(self):
        now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        store = PatternStore(retention_seconds=0, clock=lambda: now)
        store.record(_record("t", timestamp=now - timedelta(days=30)))
        assert len(store.query("t")) == 1

    def test_tool_ids(self, store):
        store.record(_record("b"))
        store.record(_record("a"))
        store.record(_record("b"))
        assert store.tool_ids() == ["b", "a"]


class TestPatternAnalysis:
    def test_empty_analysis(self, store):
        analysis = store.analyze("readFile")
        assert analysis.total == 0
        assert analysis.success_rate == 0.0
        assert analysis.common_errors == []

    def test_success_rate_and_common_errors(self, store):
        store.record(_record("readFile", success=True, duration=10))
        store.record(
            _record(
                "readFile",
                success=False,
                duration=30,
                error_category=ErrorCategory.TIMEOUT,
            )
        )
        store.record(
            _record(
                "readFile",
                success=False,
                duration=20,
                error_category=ErrorCategory.TIMEOUT,
            )
        )
        store.record(
            _record(
                "readFile",
                success=False,
                duration=40,
                error_category=ErrorCategory.INVALID_PARAMETER,
            )
        )

        analysis = store.analyze("readFile")
        assert analysis.total == 4
        assert analysis.successes == 1
        assert analysis.success_rate == 0.25
        assert analysis.average_duration == 25.0
        assert analysis.common_errors == [
            (ErrorCategory.TIMEOUT, 2),
            (ErrorCategory.INVALID_PARAMETER, 1),
        ]


class TestPatternStoreChannel:
    @pytest.mark.asyncio
    async def test_snapshots_published_on_record_and_clear(self):
        channel = HistoryChannel(initial=())
        store = PatternStore(retention_seconds=None, channel=channel)
        subscription = channel.subscribe()

        store.record(_record("readFile", {"path": "/a"}))
        store.clear()

        assert await subscription.get() == ()
        snapshot = await subscription.get()
        assert len(snapshot) == 1
        assert snapshot[0].tool_id == "readFile"
        assert await subscription.get() == ()
