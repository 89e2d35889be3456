"""
Task Store - JSON-file persistence of task records.

Layout:
	<project>/.task-orchestrator/tasks/<task-id>/task.json

Writes go to a temporary file that is renamed over the target, so a crash
never leaves a half-written record behind.
"""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import CURRENT_RECORD_VERSION, TaskRecord

logger = logging.getLogger(__name__)

RECORD_FILE = "task.json"


class PersistenceError(Exception):
	"""Raised when a task record cannot be written, read or removed."""
	pass


class TaskStore:
	"""
	Reads and writes task records for one project.

	Usage:
		store = TaskStore(config.tasks_dir(project_dir))
		await store.save(record)
		record = await store.load(task_id)
	"""

	def __init__(self, tasks_dir: Path):
		self.tasks_dir = Path(tasks_dir)

	def task_dir(self, task_id: str) -> Path:
		return self.tasks_dir / task_id

	def record_path(self, task_id: str) -> Path:
		return self.task_dir(task_id) / RECORD_FILE

	async def save(self, record: TaskRecord) -> None:
		"""
		Persist a task record atomically.

		Raises:
			PersistenceError: If the record cannot be written
		"""
		payload = record.model_dump_json(indent=2)
		try:
			await asyncio.to_thread(self._write, record.task.id, payload)
		except OSError as e:
			logger.error(f"Failed to persist task {record.task.id}: {e}")
			raise PersistenceError(f"Failed to persist task {record.task.id}: {e}") from e

	def _write(self, task_id: str, payload: str) -> None:
		target = self.record_path(task_id)
		target.parent.mkdir(parents=True, exist_ok=True)
		tmp = target.with_suffix(".json.tmp")
		tmp.write_text(payload, encoding="utf-8")
		os.replace(tmp, target)

	async def load(self, task_id: str) -> Optional[TaskRecord]:
		"""
		Load a task record.

		Returns:
			The record, or None if the task has no record on disk

		Raises:
			PersistenceError: If the record exists but cannot be parsed
		"""
		path = self.record_path(task_id)
		if not path.exists():
			return None
		try:
			text = await asyncio.to_thread(path.read_text, encoding="utf-8")
			data = json.loads(text)
		except (OSError, json.JSONDecodeError) as e:
			logger.error(f"Failed to read task record {path}: {e}")
			raise PersistenceError(f"Failed to read task record {path}: {e}") from e

		version = data.get("version", 0)
		if version > CURRENT_RECORD_VERSION:
			logger.warning(f"Task record {task_id} has newer version {version}, loading best-effort")

		try:
			return TaskRecord.model_validate(data)
		except ValidationError as e:
			logger.error(f"Invalid task record {path}: {e}")
			raise PersistenceError(f"Invalid task record {path}: {e}") from e

	def list_task_ids(self) -> list[str]:
		"""Ids of every task that has a record on disk."""
		if not self.tasks_dir.is_dir():
			return []
		return sorted(
			entry.name
			for entry in self.tasks_dir.iterdir()
			if entry.is_dir() and (entry / RECORD_FILE).exists()
		)

	async def load_all(self) -> list[TaskRecord]:
		"""Load every readable record, skipping broken ones."""
		records: list[TaskRecord] = []
		for task_id in self.list_task_ids():
			try:
				record = await self.load(task_id)
			except PersistenceError:
				continue
			if record is not None:
				records.append(record)
		return records

	async def delete(self, task_id: str) -> None:
		"""
		Remove a task's directory and everything in it.

		Raises:
			PersistenceError: If the directory cannot be removed
		"""
		directory = self.task_dir(task_id)
		if not directory.exists():
			return
		try:
			await asyncio.to_thread(shutil.rmtree, directory)
		except OSError as e:
			logger.error(f"Failed to delete task directory {directory}: {e}")
			raise PersistenceError(f"Failed to delete task {task_id}: {e}") from e
		logger.info(f"Deleted task directory {directory}")
