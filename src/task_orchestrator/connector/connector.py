"""Connector - One live subprocess session bound to a project and optionally a task."""

import asyncio
import logging
from typing import Any, Optional, Protocol

from .protocol import build_outbound

logger = logging.getLogger(__name__)


class Channel(Protocol):
	"""Transport for one connector. The websocket adapter lives in connector.app."""

	id: str

	async def send_json(self, data: dict[str, Any]) -> None:
		...

	async def close(self) -> None:
		...


class Connector:
	"""
	Outbound side of a connector session.

	Sends are serialized so messages leave in the order they were sent.
	`listen_to` limits which outbound actions the subprocess wants; an empty
	list means all of them.
	"""

	def __init__(
		self,
		channel: Channel,
		base_dir: str,
		task_id: Optional[str] = None,
		source: str = "",
		listen_to: Optional[list[str]] = None,
		input_history_file: Optional[str] = None,
	):
		self.channel = channel
		self.base_dir = base_dir
		self.task_id = task_id
		self.source = source
		self.listen_to = list(listen_to or [])
		self.input_history_file = input_history_file
		self._send_lock = asyncio.Lock()

	def __repr__(self) -> str:
		return f"Connector(channel={self.channel.id}, base_dir={self.base_dir}, task_id={self.task_id})"

	def listens_to(self, action: str) -> bool:
		return not self.listen_to or action in self.listen_to

	async def send(self, action: str, **fields: Any) -> bool:
		"""
		Send one outbound message.

		Returns:
			False if the connector does not listen to `action` or the send failed
		"""
		if not self.listens_to(action):
			logger.debug(f"{self!r} does not listen to {action}")
			return False
		message = build_outbound(action, **fields)
		async with self._send_lock:
			try:
				await self.channel.send_json(message)
			except (OSError, RuntimeError) as e:
				logger.warning(f"Failed to send {action} to {self!r}: {e}")
				return False
		return True

	async def send_prompt(
		self,
		prompt_id: str,
		prompt: str,
		mode: str,
		architect_model: Optional[str] = None,
	) -> bool:
		return await self.send(
			"prompt",
			prompt_id=prompt_id,
			prompt=prompt,
			mode=mode,
			architect_model=architect_model,
		)

	async def send_answer_question(self, answer: str, user_input: Optional[str] = None) -> bool:
		return await self.send("answer-question", answer=answer, user_input=user_input)

	async def send_interrupt(self) -> bool:
		return await self.send("interrupt-response")

	async def send_add_file(self, path: str, read_only: bool = False) -> bool:
		return await self.send("add-file", path=path, read_only=read_only)

	async def send_drop_file(self, path: str) -> bool:
		return await self.send("drop-file", path=path)

	async def send_add_message(self, content: str, role: str = "user") -> bool:
		return await self.send("add-message", content=content, role=role)

	async def send_clear_task(self) -> bool:
		return await self.send("clear-task")

	async def send_event(self, event: dict[str, Any]) -> bool:
		return await self.send("event", event=event)

	async def close(self) -> None:
		await self.channel.close()
