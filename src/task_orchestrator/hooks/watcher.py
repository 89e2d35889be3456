"""Polling directory watcher with debounce, used for hook hot-reload."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

logger = logging.getLogger(__name__)

Snapshot = dict[str, tuple[int, int]]


def snapshot_dir(directory: Path, pattern: str = "*.py") -> Snapshot:
	"""Map file name -> (mtime_ns, size) for matching files."""
	if not directory.is_dir():
		return {}
	result: Snapshot = {}
	for path in directory.glob(pattern):
		try:
			stat = path.stat()
		except FileNotFoundError:
			continue
		result[path.name] = (stat.st_mtime_ns, stat.st_size)
	return result


class DirectoryWatcher:
	"""
	Watches a directory for added, changed and removed files.

	Changes are debounced: `on_change` runs once the directory has been
	quiet for `debounce` seconds.
	"""

	def __init__(
		self,
		directory: Path,
		on_change: Callable[[], Awaitable[None]],
		poll_interval: float = 1.0,
		debounce: float = 1.0,
	):
		self.directory = Path(directory)
		self.on_change = on_change
		self.poll_interval = poll_interval
		self.debounce = debounce
		self._task: asyncio.Task | None = None
		self._snapshot: Snapshot = {}
		self._pending_since: float | None = None

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	async def start(self) -> None:
		try:
			self.directory.mkdir(parents=True, exist_ok=True)
		except OSError as e:
			logger.error(f"Failed to create watched directory {self.directory}: {e}")
		self._snapshot = await asyncio.to_thread(snapshot_dir, self.directory)
		self._task = asyncio.create_task(self._watch_loop())
		logger.debug(f"Watching {self.directory}")

	async def stop(self) -> None:
		if self._task:
			self._task.cancel()
			try:
				await self._task
			except asyncio.CancelledError:
				pass
			self._task = None

	async def poll(self) -> bool:
		"""
		Check the directory once.

		Returns:
			True if on_change ran during this poll
		"""
		current = await asyncio.to_thread(snapshot_dir, self.directory)
		now = time.monotonic()
		if current != self._snapshot:
			self._snapshot = current
			self._pending_since = now
			return False

		if self._pending_since is not None and now - self._pending_since >= self.debounce:
			self._pending_since = None
			await self.on_change()
			return True
		return False

	async def _watch_loop(self) -> None:
		while True:
			try:
				await asyncio.sleep(self.poll_interval)
				await self.poll()
			except asyncio.CancelledError:
				break
			except Exception as e:
				logger.error(f"Watcher error for {self.directory}: {e}")
