"""
Project - Registry of the tasks and connectors of one base directory.

Tasks are discovered lazily from `<base_dir>/.task-orchestrator/tasks/` the
first time anything asks for them.
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..agent.tools import Tool, ToolSet
from ..hooks.events import HookEvent
from ..task.models import AGENT_MODE, TaskData
from ..task.store import TaskStore
from ..task.task import Task, TaskError

if TYPE_CHECKING:
	from ..agent.loop import AgentRunner
	from ..agent.profile import ProfileRegistry
	from ..config import Config
	from ..connector.connector import Connector
	from ..events import EventManager
	from ..hooks.manager import HookManager
	from ..instrumentation import ToolCallStore

logger = logging.getLogger(__name__)

# Fields a new task inherits from the most recently updated one
INHERITED_FIELDS = ("main_model", "weak_model", "architect_model", "edit_format", "mode", "agent_profile_id")


class Project:
	"""Tasks, connectors and agent tools for one project directory."""

	def __init__(
		self,
		base_dir: str,
		config: "Config",
		hook_manager: "HookManager",
		event_manager: "EventManager",
		profiles: "ProfileRegistry",
		runner: "AgentRunner",
		tool_call_store: Optional["ToolCallStore"] = None,
	):
		self.base_dir = base_dir
		self.config = config
		self.hook_manager = hook_manager
		self.event_manager = event_manager
		self.profiles = profiles
		self.runner = runner
		self.tool_call_store = tool_call_store
		self.store = TaskStore(config.tasks_dir(base_dir))
		self.tools = ToolSet()
		self.input_history_file: Optional[str] = None

		self._tasks: dict[str, Task] = {}
		self._connectors: list["Connector"] = []
		self._loaded = False
		self._load_lock = asyncio.Lock()

	# Task discovery

	async def load_tasks(self) -> None:
		"""Load task records from disk once."""
		if self._loaded:
			return
		async with self._load_lock:
			if self._loaded:
				return
			records = await self.store.load_all()
			for record in records:
				if record.task.id not in self._tasks:
					self._tasks[record.task.id] = Task.from_record(self, record)
			self._loaded = True
			logger.info(f"Loaded {len(records)} tasks for project {self.base_dir}")

	async def get_task(self, task_id: Optional[str]) -> Optional[Task]:
		if not task_id:
			return None
		await self.load_tasks()
		task = self._tasks.get(task_id)
		if task is None:
			logger.warning(f"Task {task_id} not found in project {self.base_dir}")
		return task

	async def list_tasks(self) -> list[TaskData]:
		"""Task data, most recently updated first."""
		await self.load_tasks()
		return sorted(
			(task.data for task in self._tasks.values()),
			key=lambda data: data.updated_at,
			reverse=True,
		)

	def loaded_tasks(self) -> list[Task]:
		return list(self._tasks.values())

	def get_subtasks(self, task_id: str) -> list[Task]:
		return [task for task in self._tasks.values() if task.data.parent_id == task_id]

	def most_recent_task(self) -> Optional[Task]:
		tasks = [task for task in self._tasks.values() if task.data.parent_id is None]
		if not tasks:
			return None
		return max(tasks, key=lambda task: task.data.updated_at)

	# Lifecycle

	async def create_task(
		self,
		name: str = "",
		parent_id: Optional[str] = None,
		mode: Optional[str] = None,
		agent_profile_id: Optional[str] = None,
		auto_approve: bool = False,
	) -> Task:
		"""
		Create and persist a new task.

		Model selection and mode are inherited from the most recently
		updated task so a new task starts where the user left off.

		Raises:
			TaskError: If `parent_id` names an unknown task
		"""
		await self.load_tasks()
		if parent_id and parent_id not in self._tasks:
			raise TaskError(f"Parent task {parent_id} not found")

		inherited: dict = {}
		recent = self.most_recent_task()
		if recent is not None:
			inherited = {field: getattr(recent.data, field) for field in INHERITED_FIELDS}
		if mode:
			inherited["mode"] = mode
		if agent_profile_id:
			inherited["agent_profile_id"] = agent_profile_id
		inherited.setdefault("mode", AGENT_MODE)

		data = TaskData(
			project_dir=self.base_dir,
			name=name,
			parent_id=parent_id,
			auto_approve=auto_approve,
			**inherited,
		)
		task = await self._register(Task(self, data))
		logger.info(f"Created task {task.id} in {self.base_dir}")
		return task

	async def _register(self, task: Task) -> Task:
		self._tasks[task.id] = task
		await task.save()
		await self.hook_manager.trigger(HookEvent.TASK_CREATED, {"task": task.data.model_dump(mode="json")}, task)
		await self.event_manager.emit("task-created", self.base_dir, {"task": task.data.model_dump(mode="json")})
		await self.hook_manager.trigger(HookEvent.TASK_INITIALIZED, {"task": task.data.model_dump(mode="json")}, task)
		return task

	async def duplicate_task(self, task_id: str, up_to_message_id: Optional[str] = None) -> Task:
		"""
		Copy a task's data, files and history into a new task.

		Args:
			task_id: Source task
			up_to_message_id: Copy history only up to and including this message

		Raises:
			TaskError: If the source task does not exist
		"""
		source = await self.get_task(task_id)
		if source is None:
			raise TaskError(f"Task {task_id} not found")

		messages = (
			source.history.messages_up_to(up_to_message_id)
			if up_to_message_id
			else source.history.messages
		)
		copied = source.data.model_dump(exclude={
			"id",
			"created_at",
			"updated_at",
			"state",
			"working_mode",
			"worktree_path",
			"worktree_branch",
		})
		copied["name"] = f"{source.data.name} (copy)" if source.data.name else ""
		data = TaskData.model_validate(copied)
		task = Task(self, data)
		for message in messages:
			task.history.append(message.model_copy(deep=True))
		task.history.set_files([f.model_copy() for f in source.history.files])
		await self._register(task)
		logger.info(f"Duplicated task {task_id} as {task.id} ({len(task.history)} messages)")
		return task

	async def delete_task(self, task_id: str) -> None:
		"""Close a task and its subtasks, then remove them from disk."""
		await self.load_tasks()
		for subtask in self.get_subtasks(task_id):
			await self.delete_task(subtask.id)

		task = self._tasks.pop(task_id, None)
		if task is not None:
			await task.close()
		await self.store.delete(task_id)
		if self.tool_call_store is not None:
			await asyncio.to_thread(self.tool_call_store.forget_task, task_id)
		await self.event_manager.emit("task-deleted", self.base_dir, {"taskId": task_id})
		logger.info(f"Deleted task {task_id} from {self.base_dir}")

	async def restart_task(self, task_id: str) -> Task:
		"""
		Close a task and load it fresh from disk, keeping its connectors.

		Raises:
			TaskError: If the task does not exist
		"""
		task = await self.get_task(task_id)
		if task is None:
			raise TaskError(f"Task {task_id} not found")

		connectors = [c for c in self._connectors if c.task_id == task_id]
		await task.close()

		record = await self.store.load(task_id)
		if record is None:
			raise TaskError(f"Task {task_id} has no record on disk")
		restarted = Task.from_record(self, record)
		self._tasks[task_id] = restarted
		for connector in connectors:
			if connector not in self._connectors:
				self._connectors.append(connector)

		await self.hook_manager.trigger(
			HookEvent.TASK_INITIALIZED,
			{"task": restarted.data.model_dump(mode="json")},
			restarted,
		)
		await self.event_manager.emit("task-updated", self.base_dir, {
			"taskId": task_id,
			"task": restarted.data.model_dump(mode="json"),
		})
		logger.info(f"Restarted task {task_id}")
		return restarted

	async def close(self) -> None:
		for task in list(self._tasks.values()):
			await task.close()
		await self.hook_manager.stop_watching_project(self.base_dir)
		logger.info(f"Closed project {self.base_dir}")

	# Connectors

	async def add_connector(self, connector: "Connector") -> None:
		self._connectors.append(connector)
		if connector.input_history_file:
			self.input_history_file = connector.input_history_file
		logger.info(f"Connector added for {self.base_dir} (task={connector.task_id}, source={connector.source})")

	async def remove_connector(self, connector: "Connector") -> None:
		if connector in self._connectors:
			self._connectors.remove(connector)
		if not connector.task_id:
			return
		if self.get_connector(connector.task_id) is not None:
			logger.debug(f"Task {connector.task_id} is still served by another connector")
			return
		task = self._tasks.get(connector.task_id)
		if task is not None and not task.is_closed:
			await task.connector_removed()

	def get_connector(self, task_id: str, action: Optional[str] = None) -> Optional["Connector"]:
		"""Most recently attached connector for a task that listens to `action`."""
		for connector in reversed(self._connectors):
			if connector.task_id != task_id:
				continue
			if action is None or connector.listens_to(action):
				return connector
		return None

	def connectors(self) -> list["Connector"]:
		return list(self._connectors)

	def release_connectors(self, task_id: str) -> None:
		"""Detach a closing task's connectors from routing."""
		self._connectors = [c for c in self._connectors if c.task_id != task_id]

	# Tools

	def register_tool(self, tool: Tool) -> None:
		self.tools.add(tool)

	def unregister_tool(self, key: str) -> None:
		self.tools.remove(key)

	# Input history

	async def load_input_history(self) -> list[str]:
		"""
		Prompts from the connector's input history file, newest first.

		Lines starting with "+" are prompt lines; consecutive ones form one
		multi-line prompt, and "#" lines separate entries.
		"""
		if not self.input_history_file:
			return []
		path = Path(self.input_history_file)
		if not path.is_absolute():
			path = Path(self.base_dir) / path
		if not path.exists():
			return []

		text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
		entries: list[str] = []
		current: list[str] = []
		for line in text.splitlines():
			if line.startswith("+"):
				current.append(line[1:])
			elif current:
				entries.append("\n".join(current))
				current = []
		if current:
			entries.append("\n".join(current))
		return list(reversed(entries))
