"""Abort signal shared by a task step and everything it awaits."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)


class OperationAborted(Exception):
	"""Raised by AbortSignal.race when the signal fires first."""

	def __init__(self, reason: str = "cancelled"):
		super().__init__(reason)
		self.reason = reason


class AbortSignal:
	"""
	Cooperative cancellation for one step.

	A child signal created with a parent aborts whenever the parent does,
	which is how cancellation reaches nested subagent work.
	"""

	def __init__(self, parent: Optional["AbortSignal"] = None):
		self._event = asyncio.Event()
		self._listeners: list[Callable[[str], Any]] = []
		self.reason: Optional[str] = None
		self._parent = parent
		if parent is not None:
			parent.add_listener(self.abort)

	@property
	def aborted(self) -> bool:
		return self._event.is_set()

	def abort(self, reason: str = "cancelled") -> None:
		"""Fire the signal. Listeners run synchronously, once."""
		if self._event.is_set():
			return
		self.reason = reason
		self._event.set()
		listeners, self._listeners = self._listeners, []
		for listener in listeners:
			try:
				listener(reason)
			except Exception as e:
				logger.error(f"Abort listener failed: {e}")

	def add_listener(self, listener: Callable[[str], Any]) -> None:
		if self.aborted:
			listener(self.reason or "cancelled")
			return
		self._listeners.append(listener)

	def remove_listener(self, listener: Callable[[str], Any]) -> None:
		if listener in self._listeners:
			self._listeners.remove(listener)

	def detach(self) -> None:
		"""Stop following the parent signal."""
		if self._parent is not None:
			self._parent.remove_listener(self.abort)
			self._parent = None

	async def wait(self) -> None:
		await self._event.wait()

	async def race(self, awaitable: Awaitable) -> Any:
		"""
		Await `awaitable` unless the signal fires first.

		Returns:
			The awaitable's result

		Raises:
			OperationAborted: If the signal fired before completion
		"""
		if self.aborted:
			if asyncio.iscoroutine(awaitable):
				awaitable.close()
			raise OperationAborted(self.reason or "cancelled")

		work = asyncio.ensure_future(awaitable)
		waiter = asyncio.ensure_future(self._event.wait())
		try:
			await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			work.cancel()
			waiter.cancel()
			raise

		if work.done():
			waiter.cancel()
			return work.result()

		work.cancel()
		await asyncio.wait({work})
		if not work.cancelled() and work.exception() is not None:
			logger.debug(f"Aborted operation raised during cancel: {work.exception()}")
		raise OperationAborted(self.reason or "cancelled")
