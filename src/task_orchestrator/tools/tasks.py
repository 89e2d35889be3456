"""Task management tools."""

import json
from typing import Optional

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..project.manager import get_project_manager
from ..task.history import MessageRemovalError
from ..task.models import TaskData, WorkingMode
from ..task.store import PersistenceError
from ..task.task import Task, TaskBusyError, TaskError
from ..worktrees import WorktreeError


def _summary(data: TaskData) -> dict:
	return {
		"id": data.id,
		"name": data.name,
		"parent_id": data.parent_id,
		"state": data.state.value,
		"mode": data.mode,
		"working_mode": data.working_mode.value,
		"main_model": data.main_model,
		"updated_at": data.updated_at,
	}


def _failure(error: object, **extra) -> str:
	return json.dumps({"success": False, "error": str(error), **extra})


def _not_found(task_id: str) -> str:
	return _failure(f"Task not found: {task_id}")


async def _get_task(project_dir: str, task_id: str) -> Optional[Task]:
	project = get_project_manager().get_project(project_dir)
	return await project.get_task(task_id)


def register_task_tools(mcp: FastMCP, config: Config) -> None:
	"""Register task management tools."""

	@mcp.tool()
	async def list_tasks(project_dir: str) -> str:
		"""
		List the tasks of a project, most recently updated first.

		Args:
			project_dir: Project base directory
		"""
		project = get_project_manager().get_project(project_dir)
		tasks = await project.list_tasks()
		return json.dumps({
			"project_dir": project.base_dir,
			"count": len(tasks),
			"tasks": [_summary(t) for t in tasks],
		}, indent=2)

	@mcp.tool()
	async def create_task(
		project_dir: str,
		name: str = "",
		mode: str = "",
		parent_id: str = "",
		agent_profile_id: str = "",
	) -> str:
		"""
		Create a new task. Models and mode are inherited from the most recent task.

		Args:
			project_dir: Project base directory
			name: Task name
			mode: "agent" or a connector mode (code, ask, architect, context)
			parent_id: Parent task ID to create a subtask
			agent_profile_id: Agent profile for agent mode
		"""
		project = get_project_manager().get_project(project_dir)
		try:
			task = await project.create_task(
				name=name,
				parent_id=parent_id or None,
				mode=mode or None,
				agent_profile_id=agent_profile_id or None,
			)
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": True, "task": _summary(task.data)}, indent=2)

	@mcp.tool()
	async def submit_prompt(project_dir: str, task_id: str, prompt: str, mode: str = "") -> str:
		"""
		Submit a prompt to a task. Returns once the step has started.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			prompt: Prompt text
			mode: Optional mode override for this prompt
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		try:
			step = await task.submit_prompt(prompt, mode or None)
		except TaskBusyError as e:
			return _failure(e, state=task.state.value)
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		if step is None:
			return _failure("Prompt blocked by hook")
		return json.dumps({"success": True, "task_id": task.id, "state": task.state.value})

	@mcp.tool()
	async def answer_question(project_dir: str, task_id: str, answer: str, user_input: str = "") -> str:
		"""
		Answer a task's pending question or approval.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			answer: "y", "n", "a" (always) or free text
			user_input: Optional text passed along with a rejection
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		answered = await task.answer_question(answer, user_input or None)
		if not answered:
			return _failure("No pending question")
		return json.dumps({"success": True, "state": task.state.value})

	@mcp.tool()
	async def interrupt_task(project_dir: str, task_id: str) -> str:
		"""
		Interrupt a task's running step.

		Args:
			project_dir: Project base directory
			task_id: Task ID
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		await task.interrupt()
		return json.dumps({"success": True})

	@mcp.tool()
	async def add_file(project_dir: str, task_id: str, path: str, read_only: bool = False) -> str:
		"""
		Add a file to a task's context.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			path: File path relative to the task directory
			read_only: Whether the file may only be read
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		try:
			added = await task.add_files([(path, read_only)])
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": True, "added": [f.path for f in added]})

	@mcp.tool()
	async def drop_file(project_dir: str, task_id: str, path: str) -> str:
		"""
		Drop a file from a task's context.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			path: File path relative to the task directory
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		try:
			dropped = await task.drop_file(path)
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": dropped})

	@mcp.tool()
	async def duplicate_task(project_dir: str, task_id: str, up_to_message_id: str = "") -> str:
		"""
		Duplicate a task, optionally only up to a given message.

		Args:
			project_dir: Project base directory
			task_id: Source task ID
			up_to_message_id: Last message to copy (inclusive)
		"""
		project = get_project_manager().get_project(project_dir)
		try:
			task = await project.duplicate_task(task_id, up_to_message_id or None)
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": True, "task": _summary(task.data)}, indent=2)

	@mcp.tool()
	async def delete_task(project_dir: str, task_id: str) -> str:
		"""
		Delete a task and its subtasks, including their files on disk.

		Args:
			project_dir: Project base directory
			task_id: Task ID
		"""
		project = get_project_manager().get_project(project_dir)
		try:
			await project.delete_task(task_id)
		except PersistenceError as e:
			return _failure(e)
		return json.dumps({"success": True, "deleted": task_id})

	@mcp.tool()
	async def restart_task(project_dir: str, task_id: str) -> str:
		"""
		Stop a task and reload it from disk.

		Args:
			project_dir: Project base directory
			task_id: Task ID
		"""
		project = get_project_manager().get_project(project_dir)
		try:
			task = await project.restart_task(task_id)
		except (TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": True, "task": _summary(task.data)})

	@mcp.tool()
	async def get_task_history(project_dir: str, task_id: str, offset: int = 0, limit: int = 0) -> str:
		"""
		Get a page of a task's context messages.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			offset: Index of the first message
			limit: Page size (0 = configured default)
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		page_size = limit if limit > 0 else config.history_page_size
		messages = await task.get_history(offset, page_size)
		return json.dumps({
			"task_id": task.id,
			"total": len(task.history),
			"offset": offset,
			"messages": [m.model_dump(mode="json") for m in messages],
			"files": [f.model_dump(mode="json") for f in task.history.files],
		}, indent=2)

	@mcp.tool()
	async def remove_messages(project_dir: str, task_id: str, message_ids: str) -> str:
		"""
		Remove messages from a task's history.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			message_ids: Comma-separated message IDs
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		ids = [i.strip() for i in message_ids.split(",") if i.strip()]
		try:
			removed = await task.remove_messages(ids)
		except (MessageRemovalError, TaskError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({"success": True, "removed": removed})

	@mcp.tool()
	async def set_working_mode(project_dir: str, task_id: str, working_mode: str) -> str:
		"""
		Switch a task between the project directory and its own git worktree.

		Args:
			project_dir: Project base directory
			task_id: Task ID
			working_mode: "local" or "worktree"
		"""
		task = await _get_task(project_dir, task_id)
		if task is None:
			return _not_found(task_id)
		try:
			await task.set_working_mode(WorkingMode(working_mode))
		except ValueError:
			return _failure(f"Invalid working mode: {working_mode}")
		except (TaskError, WorktreeError, PersistenceError) as e:
			return _failure(e)
		return json.dumps({
			"success": True,
			"working_mode": task.data.working_mode.value,
			"worktree_path": task.data.worktree_path,
		})
