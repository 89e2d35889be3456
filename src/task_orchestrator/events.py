"""
Event Manager - Fan-out of task events to UI subscribers.

Subscribers are either in-process callbacks or connector channels that sent
`subscribe-events`. Each subscriber may filter by event type and by project
base directory. A failing subscriber is logged and never affects the task
that emitted the event.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({
	"task-created",
	"task-updated",
	"task-deleted",
	"state-changed",
	"user-message",
	"add-message",
	"response-chunk",
	"response-completed",
	"tool",
	"log",
	"messages-removed",
	"question-asked",
	"question-answered",
	"context-files-updated",
	"tokens-info-updated",
	"models-updated",
})


@dataclass
class Subscriber:
	callback: Callable[[dict[str, Any]], Any]
	event_types: Optional[frozenset[str]] = None
	base_dirs: Optional[frozenset[str]] = None
	owner: Any = None
	id: int = field(default=0)

	def matches(self, event_type: str, base_dir: str) -> bool:
		if self.event_types and event_type not in self.event_types:
			return False
		if self.base_dirs and base_dir not in self.base_dirs:
			return False
		return True


class EventManager:
	"""
	Delivers events in emission order to every matching subscriber.

	Usage:
		events = EventManager()
		events.subscribe(print, event_types=["state-changed"])
		await events.emit("state-changed", "/repo", {"taskId": "t1", "state": "running"})
	"""

	def __init__(self):
		self._subscribers: list[Subscriber] = []
		self._next_id = 1

	def subscribe(
		self,
		callback: Callable[[dict[str, Any]], Any],
		event_types: Optional[list[str]] = None,
		base_dirs: Optional[list[str]] = None,
		owner: Any = None,
	) -> Subscriber:
		"""Register a callback (sync or async); `owner` groups subscriptions for unsubscribe."""
		subscriber = Subscriber(
			callback=callback,
			event_types=frozenset(event_types) if event_types else None,
			base_dirs=frozenset(base_dirs) if base_dirs else None,
			owner=owner,
			id=self._next_id,
		)
		self._next_id += 1
		self._subscribers.append(subscriber)
		logger.debug(f"Subscriber {subscriber.id} added (types={event_types}, baseDirs={base_dirs})")
		return subscriber

	def unsubscribe(self, subscriber: Subscriber) -> None:
		self._subscribers = [s for s in self._subscribers if s is not subscriber]

	def unsubscribe_owner(self, owner: Any) -> int:
		"""Remove every subscription registered for `owner`. Returns the count removed."""
		before = len(self._subscribers)
		self._subscribers = [s for s in self._subscribers if s.owner is not owner]
		return before - len(self._subscribers)

	@property
	def subscriber_count(self) -> int:
		return len(self._subscribers)

	async def emit(self, event_type: str, base_dir: str, data: dict[str, Any]) -> None:
		event = {"type": event_type, "baseDir": base_dir, "data": data}
		for subscriber in list(self._subscribers):
			if not subscriber.matches(event_type, base_dir):
				continue
			try:
				result = subscriber.callback(event)
				if inspect.isawaitable(result):
					await result
			except Exception as e:
				logger.error(f"Event subscriber {subscriber.id} failed on {event_type}: {e}")
