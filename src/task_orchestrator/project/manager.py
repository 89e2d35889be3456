"""
Project Manager - Maps base directories to projects and owns shared services.

All projects share one hook manager, event manager, agent runner, profile
registry and tool-call store.
"""

import logging
from pathlib import Path
from typing import Optional

from ..agent.loop import AgentRunner
from ..agent.profile import ProfileRegistry, load_profiles
from ..agent.provider import AgentProvider, UnconfiguredProvider
from ..config import Config, get_config
from ..events import EventManager
from ..hooks.manager import HookManager
from ..instrumentation import ToolCallStore
from .project import Project

logger = logging.getLogger(__name__)


def normalize_base_dir(base_dir: str) -> str:
	return str(Path(base_dir).expanduser().resolve())


class ProjectManager:
	"""
	Entry point for everything task-related.

	Usage:
		manager = ProjectManager(config, provider=my_provider)
		project = manager.get_project("/path/to/repo")
		task = await project.create_task(name="Fix tests")
	"""

	def __init__(
		self,
		config: Optional[Config] = None,
		provider: Optional[AgentProvider] = None,
		profiles: Optional[ProfileRegistry] = None,
		hook_manager: Optional[HookManager] = None,
		event_manager: Optional[EventManager] = None,
		tool_call_store: Optional[ToolCallStore] = None,
	):
		self.config = config or get_config()
		self.profiles = profiles or load_profiles(self.config.profiles_file)
		self.hook_manager = hook_manager or HookManager(
			self.config.global_hooks_dir,
			poll_interval=self.config.hook_poll_interval,
			debounce=self.config.hook_reload_debounce,
		)
		self.event_manager = event_manager or EventManager()
		self.runner = AgentRunner(provider or UnconfiguredProvider())
		if tool_call_store is None and self.config.instrument:
			tool_call_store = ToolCallStore(str(self.config.tool_calls_db_path))
		self.tool_call_store = tool_call_store
		self._projects: dict[str, Project] = {}

	def get_project(self, base_dir: str) -> Project:
		"""Get the project for a directory, creating it on first use."""
		key = normalize_base_dir(base_dir)
		project = self._projects.get(key)
		if project is None:
			project = Project(
				key,
				config=self.config,
				hook_manager=self.hook_manager,
				event_manager=self.event_manager,
				profiles=self.profiles,
				runner=self.runner,
				tool_call_store=self.tool_call_store,
			)
			self._projects[key] = project
			logger.info(f"Opened project {key}")
		return project

	def list_projects(self) -> list[str]:
		return list(self._projects)

	async def close_project(self, base_dir: str) -> None:
		project = self._projects.pop(normalize_base_dir(base_dir), None)
		if project is not None:
			await project.close()

	async def close(self) -> None:
		for base_dir in list(self._projects):
			await self.close_project(base_dir)
		await self.hook_manager.dispose()
		logger.info("ProjectManager closed")


# Singleton
_manager: Optional[ProjectManager] = None


def get_project_manager() -> ProjectManager:
	"""Get or create the global project manager."""
	global _manager
	if _manager is None:
		_manager = ProjectManager()
	return _manager


def set_project_manager(manager: Optional[ProjectManager]) -> None:
	global _manager
	_manager = manager
