"""
Tool invocation telemetry.

Every tool call a task makes is written to SQLite with its outcome, so
denials, aborts and hook blocks can be told apart from real failures when
looking at a task after the fact.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


class ToolOutcome(str, Enum):
	SUCCESS = "success"
	ERROR = "error"
	DENIED = "denied"
	ABORTED = "aborted"
	BLOCKED = "blocked"


@dataclass
class ToolCallRecord:
	"""One finished tool invocation."""
	task_id: str
	tool: str
	outcome: ToolOutcome = ToolOutcome.SUCCESS
	duration: float = 0.0
	args_preview: str = ""
	result_preview: str = ""
	recorded_at: str = field(default_factory=lambda: datetime.now().isoformat())

	@property
	def succeeded(self) -> bool:
		return self.outcome == ToolOutcome.SUCCESS


@dataclass
class ToolStats:
	"""Per-tool aggregate over every recorded task."""
	tool: str
	calls: int
	successes: int
	avg_duration: float
	failures: int
	denials: int
	last_called: str

	@property
	def success_rate(self) -> float:
		return 100.0 * self.successes / self.calls if self.calls else 0.0


_SCHEMA = """
CREATE TABLE IF NOT EXISTS tool_invocations (
	id INTEGER PRIMARY KEY AUTOINCREMENT,
	task_id TEXT NOT NULL,
	tool TEXT NOT NULL,
	outcome TEXT NOT NULL,
	duration REAL NOT NULL DEFAULT 0,
	args_preview TEXT NOT NULL DEFAULT '',
	result_preview TEXT NOT NULL DEFAULT '',
	recorded_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tool_invocations_task ON tool_invocations(task_id);
CREATE INDEX IF NOT EXISTS idx_tool_invocations_tool ON tool_invocations(tool);
"""


class ToolCallStore:
	"""
	SQLite store of tool invocations, shared by every project.

	Usage:
		store = ToolCallStore(config.tool_calls_db_path)
		store.record(ToolCallRecord(task_id=task.id, tool="power/bash"))
		store.stats()
	"""

	def __init__(self, db_path: str | Path):
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		with self._connect() as conn:
			conn.executescript(_SCHEMA)

	def _connect(self) -> sqlite3.Connection:
		conn = sqlite3.connect(self.db_path)
		conn.row_factory = sqlite3.Row
		return conn

	def record(self, entry: ToolCallRecord) -> None:
		with self._connect() as conn:
			conn.execute(
				"INSERT INTO tool_invocations "
				"(task_id, tool, outcome, duration, args_preview, result_preview, recorded_at) "
				"VALUES (:task_id, :tool, :outcome, :duration, :args_preview, :result_preview, :recorded_at)",
				{
					"task_id": entry.task_id,
					"tool": entry.tool,
					"outcome": ToolOutcome(entry.outcome).value,
					"duration": entry.duration,
					"args_preview": entry.args_preview,
					"result_preview": entry.result_preview,
					"recorded_at": entry.recorded_at,
				},
			)

	def query(
		self,
		task_id: Optional[str] = None,
		tool: Optional[str] = None,
		outcome: Optional[ToolOutcome] = None,
		limit: int = 100,
	) -> list[ToolCallRecord]:
		"""Recorded invocations matching every given filter, newest first."""
		filters = {"task_id": task_id, "tool": tool, "outcome": ToolOutcome(outcome).value if outcome else None}
		clauses = [f"{column} = :{column}" for column, value in filters.items() if value is not None]
		where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

		with self._connect() as conn:
			rows = conn.execute(
				f"SELECT * FROM tool_invocations {where} ORDER BY id DESC LIMIT :limit",
				{**filters, "limit": limit},
			).fetchall()

		return [
			ToolCallRecord(
				task_id=row["task_id"],
				tool=row["tool"],
				outcome=ToolOutcome(row["outcome"]),
				duration=row["duration"],
				args_preview=row["args_preview"],
				result_preview=row["result_preview"],
				recorded_at=row["recorded_at"],
			)
			for row in rows
		]

	def stats(self) -> list[ToolStats]:
		"""Aggregates per tool, most called first."""
		with self._connect() as conn:
			rows = conn.execute(
				"SELECT tool, COUNT(*) AS calls, SUM(outcome = 'success') AS successes, AVG(duration) AS avg_duration, "
				"SUM(outcome = 'error') AS failures, SUM(outcome = 'denied') AS denials, "
				"MAX(recorded_at) AS last_called "
				"FROM tool_invocations GROUP BY tool ORDER BY calls DESC, tool"
			).fetchall()
		return [ToolStats(**dict(row)) for row in rows]

	def forget_task(self, task_id: str) -> int:
		"""Drop a deleted task's invocations. Returns the number removed."""
		with self._connect() as conn:
			cursor = conn.execute("DELETE FROM tool_invocations WHERE task_id = ?", (task_id,))
		if cursor.rowcount:
			logger.debug(f"Removed {cursor.rowcount} tool call records of task {task_id}")
		return cursor.rowcount


def preview(value: Any, limit: int = PREVIEW_LENGTH) -> str:
	"""One-line preview of a tool's args or result."""
	text = " ".join(str(value).split())
	return text if len(text) <= limit else f"{text[:limit]}..."
