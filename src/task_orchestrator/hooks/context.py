"""Context object handed to hook handlers."""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
	from ..task.task import Task

logger = logging.getLogger(__name__)


class HookContext:
	"""
	Read/execute accessors for the task a hook runs for.

	Scoped to one task and its project directory; it never exposes other
	tasks.
	"""

	def __init__(self, task: "Task"):
		self._task = task

	@property
	def task_id(self) -> str:
		return self._task.id

	@property
	def project_dir(self) -> str:
		return self._task.project_dir

	@property
	def task_dir(self) -> str:
		return self._task.task_dir

	def get_task_data(self) -> dict[str, Any]:
		return self._task.data.model_dump(mode="json")

	async def get_context_messages(self) -> list[dict]:
		messages = await self._task.get_history()
		return [m.model_dump(mode="json") for m in messages]

	async def get_context_files(self) -> list[dict]:
		return [f.model_dump(mode="json") for f in self._task.history.files]

	async def add_log(self, message: str, level: str = "info") -> None:
		await self._task.add_log_message(level, message)

	async def add_file(self, path: str, read_only: bool = False) -> None:
		await self._task.add_files([(path, read_only)])

	async def read_file(self, path: str) -> str:
		"""Read a file relative to the task directory."""
		target = (Path(self.task_dir) / path).resolve()
		return await asyncio.to_thread(target.read_text, encoding="utf-8")

	async def run_command(self, command: str, timeout: int = 60) -> tuple[str, str, int]:
		"""Run a shell command in the task directory and return (stdout, stderr, returncode)."""
		proc = await asyncio.create_subprocess_shell(
			command,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			cwd=self.task_dir,
		)
		try:
			stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
		except asyncio.TimeoutError:
			proc.kill()
			await proc.wait()
			return ("", f"Command timed out after {timeout}s", -1)
		return (stdout.decode(), stderr.decode(), proc.returncode or 0)
