"""Tests for tool call telemetry."""

from pathlib import Path

import pytest

from task_orchestrator.instrumentation import ToolCallRecord, ToolCallStore, ToolOutcome, preview


@pytest.fixture
def store(tmp_path: Path) -> ToolCallStore:
	return ToolCallStore(tmp_path / "telemetry" / "calls.db")


class TestToolCallStore:
	def test_creates_parent_directory(self, tmp_path: Path):
		ToolCallStore(tmp_path / "nested" / "dir" / "calls.db")
		assert (tmp_path / "nested" / "dir" / "calls.db").exists()

	def test_record_roundtrip(self, store: ToolCallStore):
		store.record(ToolCallRecord(
			task_id="t1",
			tool="power/bash",
			outcome=ToolOutcome.DENIED,
			duration=0.25,
			args_preview='{"command": "rm -rf build"}',
			result_preview="Tool call denied by user.",
		))

		[record] = store.query()
		assert record.task_id == "t1"
		assert record.tool == "power/bash"
		assert record.outcome == ToolOutcome.DENIED
		assert record.succeeded is False
		assert record.duration == 0.25
		assert record.args_preview == '{"command": "rm -rf build"}'

	def test_filters_combine(self, store: ToolCallStore):
		store.record(ToolCallRecord(task_id="t1", tool="power/bash"))
		store.record(ToolCallRecord(task_id="t1", tool="power/read", outcome=ToolOutcome.ERROR))
		store.record(ToolCallRecord(task_id="t2", tool="power/bash", outcome=ToolOutcome.ERROR))

		assert len(store.query(task_id="t1")) == 2
		assert len(store.query(tool="power/bash")) == 2
		[match] = store.query(task_id="t1", outcome=ToolOutcome.ERROR)
		assert match.tool == "power/read"
		assert store.query(task_id="t2", tool="power/read") == []

	def test_newest_first_with_limit(self, store: ToolCallStore):
		for i in range(5):
			store.record(ToolCallRecord(task_id="t1", tool=f"group/tool_{i}"))

		assert [r.tool for r in store.query(limit=2)] == ["group/tool_4", "group/tool_3"]

	def test_forget_task(self, store: ToolCallStore):
		store.record(ToolCallRecord(task_id="gone", tool="a/b"))
		store.record(ToolCallRecord(task_id="gone", tool="a/c"))
		store.record(ToolCallRecord(task_id="kept", tool="a/b"))

		assert store.forget_task("gone") == 2
		assert store.forget_task("gone") == 0
		assert [r.task_id for r in store.query()] == ["kept"]


class TestStats:
	def test_empty(self, store: ToolCallStore):
		assert store.stats() == []

	def test_aggregates_by_tool(self, store: ToolCallStore):
		store.record(ToolCallRecord(task_id="t", tool="power/bash", duration=0.1))
		store.record(ToolCallRecord(task_id="t", tool="power/bash", duration=0.3, outcome=ToolOutcome.DENIED))
		store.record(ToolCallRecord(task_id="t", tool="power/bash", duration=0.2, outcome=ToolOutcome.ERROR))
		store.record(ToolCallRecord(task_id="t", tool="power/bash", duration=0.2, outcome=ToolOutcome.ABORTED))
		store.record(ToolCallRecord(task_id="t", tool="power/read", duration=0.5))

		bash, read = store.stats()
		assert bash.tool == "power/bash"
		assert bash.calls == 4
		assert bash.failures == 1
		assert bash.denials == 1
		assert bash.avg_duration == pytest.approx(0.2)
		assert bash.successes == 1
		assert bash.success_rate == pytest.approx(25.0)
		assert read.success_rate == pytest.approx(100.0)


def test_preview_flattens_and_truncates():
	assert preview("line one\n  line two") == "line one line two"
	assert preview({"ok": True}) == "{'ok': True}"
	assert preview("x" * 30, limit=10) == "x" * 10 + "..."
