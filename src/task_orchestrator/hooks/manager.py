"""
Hook Manager - Runs user hooks for task lifecycle events.

Handlers run in registration order, global before project. Each handler
receives a copy of the current event value and may continue (optionally
returning a partial dict merged into the next event value), block, or
override with a definite answer. Handler errors are logged and the chain
continues with the event unmodified.

Handler lists are immutable tuples. Reloads build a new tuple and swap it
in, so a running chain keeps the snapshot it started with.
"""

import asyncio
import inspect
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .context import HookContext
from .events import Block, Continue, HookEvent, HookResult, Override, interpret
from .loader import HookModule, load_hooks_from_dir
from .watcher import DirectoryWatcher

if TYPE_CHECKING:
	from ..task.task import Task

logger = logging.getLogger(__name__)


class HookManager:
	"""Loads, hot-reloads and triggers global and per-project hooks."""

	def __init__(
		self,
		global_hooks_dir: Path,
		project_hooks_subdir: str = ".task-orchestrator/hooks",
		poll_interval: float = 1.0,
		debounce: float = 1.0,
		watch: bool = True,
	):
		self.global_hooks_dir = Path(global_hooks_dir)
		self.project_hooks_subdir = project_hooks_subdir
		self.poll_interval = poll_interval
		self.debounce = debounce
		self.watch = watch

		self._global_hooks: tuple[HookModule, ...] = ()
		self._project_hooks: dict[str, tuple[HookModule, ...]] = {}
		self._global_initialized = False
		self._global_watcher: DirectoryWatcher | None = None
		self._project_watchers: dict[str, DirectoryWatcher] = {}
		self._lock = asyncio.Lock()
		self._project_lock = asyncio.Lock()

	def project_hooks_dir(self, project_dir: str) -> Path:
		return Path(project_dir) / self.project_hooks_subdir

	async def init(self) -> None:
		"""Load global hooks and start watching them."""
		async with self._lock:
			if self._global_initialized:
				return
			await self.reload_global_hooks()
			if self.watch:
				self._global_watcher = DirectoryWatcher(
					self.global_hooks_dir,
					self._on_global_change,
					poll_interval=self.poll_interval,
					debounce=self.debounce,
				)
				await self._global_watcher.start()
			self._global_initialized = True

	async def _on_global_change(self) -> None:
		logger.info("Global hooks changed, reloading...")
		await self.reload_global_hooks()

	async def reload_global_hooks(self) -> None:
		hooks = await asyncio.to_thread(load_hooks_from_dir, self.global_hooks_dir, "global")
		self._global_hooks = hooks

	async def reload_project_hooks(self, project_dir: str) -> None:
		"""Load a project's hooks and start watching its hooks directory."""
		hooks_dir = self.project_hooks_dir(project_dir)
		hooks = await asyncio.to_thread(load_hooks_from_dir, hooks_dir, "project")
		self._project_hooks[project_dir] = hooks

		if self.watch and project_dir not in self._project_watchers:
			async def on_change() -> None:
				logger.info(f"Project hooks changed for {project_dir}, reloading...")
				updated = await asyncio.to_thread(load_hooks_from_dir, hooks_dir, "project")
				self._project_hooks[project_dir] = updated

			watcher = DirectoryWatcher(
				hooks_dir,
				on_change,
				poll_interval=self.poll_interval,
				debounce=self.debounce,
			)
			await watcher.start()
			self._project_watchers[project_dir] = watcher

		logger.info(f"Reloaded hooks for project: {project_dir}")

	async def stop_watching_project(self, project_dir: str) -> None:
		watcher = self._project_watchers.pop(project_dir, None)
		if watcher:
			await watcher.stop()
		self._project_hooks.pop(project_dir, None)
		logger.info(f"Stopped watching hooks for project: {project_dir}")

	def handlers_for(self, project_dir: str) -> tuple[HookModule, ...]:
		"""Current snapshot of handlers for a project, global first."""
		return self._global_hooks + self._project_hooks.get(project_dir, ())

	async def trigger(
		self,
		hook_event: HookEvent,
		event: dict[str, Any],
		task: "Task",
	) -> HookResult:
		"""
		Run every handler for `hook_event` as a left fold over the event.

		Args:
			hook_event: Event being triggered
			event: Event payload
			task: Task the event belongs to

		Returns:
			HookResult with the final event, blocked flag and override value
		"""
		if not self._global_initialized:
			await self.init()

		project_dir = task.project_dir
		if project_dir not in self._project_hooks:
			async with self._project_lock:
				if project_dir not in self._project_hooks:
					await self.reload_project_hooks(project_dir)

		modules = self.handlers_for(project_dir)
		context = HookContext(task)
		current: dict[str, Any] = dict(event)

		for module in modules:
			handler = module.get(hook_event.value)
			if handler is None:
				continue

			try:
				returned = handler(dict(current), context)
				if inspect.isawaitable(returned):
					returned = await returned
			except Exception as e:
				logger.error(f"Error executing hook {hook_event.value} from {module.path}: {e}")
				continue

			outcome = interpret(hook_event, returned, current)
			if isinstance(outcome, Continue):
				current = dict(outcome.event)
			elif isinstance(outcome, Block):
				logger.info(f"Hook {hook_event.value} blocked by {module.name}")
				return HookResult(event=current, blocked=True)
			elif isinstance(outcome, Override):
				logger.debug(f"Hook {hook_event.value} overridden by {module.name}: {outcome.value!r}")
				return HookResult(event=current, result=outcome.value)

		return HookResult(event=current)

	async def dispose(self) -> None:
		if self._global_watcher:
			await self._global_watcher.stop()
			self._global_watcher = None
		for watcher in self._project_watchers.values():
			await watcher.stop()
		self._project_watchers.clear()
		self._project_hooks.clear()
		self._global_initialized = False
		logger.info("HookManager disposed")
