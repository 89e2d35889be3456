"""
Task History - Ordered context messages and files of one task.

Only the owning Task mutates a TaskHistory. Messages are append-ordered;
explicit removal deletes a set of ids without reordering the rest. At most
one streamed response is open at a time.
"""

import logging
from pathlib import Path
from typing import Optional

from ..messages import PromptContext, ResponseMessage, UsageReport
from .models import ContextFile

logger = logging.getLogger(__name__)


class MessageRemovalError(Exception):
	"""Raised when removal would touch the open streamed response."""
	pass


class TaskHistory:
	"""Context messages, context files and the open-stream pointer."""

	def __init__(self, task_id: str, messages: Optional[list] = None, files: Optional[list[ContextFile]] = None):
		self.task_id = task_id
		self._messages: list = []
		self._by_id: dict[str, object] = {}
		self.files: list[ContextFile] = list(files or [])
		self.open_stream_id: Optional[str] = None
		for message in messages or []:
			self.append(message)

	@property
	def messages(self) -> list:
		return list(self._messages)

	def __len__(self) -> int:
		return len(self._messages)

	def __contains__(self, message_id: str) -> bool:
		return message_id in self._by_id

	def get(self, message_id: str):
		return self._by_id.get(message_id)

	def append(self, message) -> bool:
		"""
		Append a message unless its id is already present.

		Returns:
			True if appended, False for a duplicate or empty response
		"""
		if message.id in self._by_id:
			logger.debug(f"Task {self.task_id}: duplicate message {message.id} ignored")
			return False
		if isinstance(message, ResponseMessage) and message.completed and not message.content:
			logger.debug(f"Task {self.task_id}: skipping empty assistant message")
			return False
		self._messages.append(message)
		self._by_id[message.id] = message
		return True

	def clear(self) -> None:
		self._messages = []
		self._by_id = {}
		self.open_stream_id = None

	# Streaming

	def apply_chunk(
		self,
		message_id: str,
		chunk: str,
		prompt_context: Optional[PromptContext] = None,
	) -> Optional[ResponseMessage]:
		"""
		Append a chunk to the open stream for `message_id`.

		An unknown id opens a new response, finalizing any other open stream
		with its partial content. Chunks for a completed response are ignored.

		Returns:
			The updated message, or None if the chunk was ignored
		"""
		existing = self._by_id.get(message_id)
		if existing is not None:
			if not isinstance(existing, ResponseMessage) or existing.completed:
				logger.debug(f"Task {self.task_id}: late chunk for {message_id} ignored")
				return None
			existing.content += chunk
			self.open_stream_id = message_id
			return existing

		self.finalize_open_stream()
		message = ResponseMessage(id=message_id, content=chunk, prompt_context=prompt_context)
		self._messages.append(message)
		self._by_id[message_id] = message
		self.open_stream_id = message_id
		return message

	def apply_completed(
		self,
		message_id: str,
		usage: Optional[UsageReport] = None,
		content: Optional[str] = None,
		prompt_context: Optional[PromptContext] = None,
	) -> Optional[ResponseMessage]:
		"""
		Complete the response for `message_id`.

		Accumulated chunks win over `content`; `content` is used when nothing
		was streamed. Completing an already completed response is a no-op.

		Returns:
			The completed message, or None for a duplicate terminal event
		"""
		existing = self._by_id.get(message_id)
		if existing is not None:
			if not isinstance(existing, ResponseMessage) or existing.completed:
				logger.debug(f"Task {self.task_id}: duplicate completion for {message_id} ignored")
				return None
			if not existing.content and content:
				existing.content = content
			existing.usage = usage or existing.usage
			existing.completed = True
			if self.open_stream_id == message_id:
				self.open_stream_id = None
			return existing

		if not content:
			# Nothing streamed and nothing carried: no message to keep
			return None

		self.finalize_open_stream()
		message = ResponseMessage(
			id=message_id,
			content=content,
			usage=usage,
			completed=True,
			prompt_context=prompt_context,
		)
		self._messages.append(message)
		self._by_id[message_id] = message
		return message

	def finalize_open_stream(self) -> Optional[ResponseMessage]:
		"""Mark the open stream completed with whatever was accumulated."""
		if self.open_stream_id is None:
			return None
		message = self._by_id.get(self.open_stream_id)
		self.open_stream_id = None
		if isinstance(message, ResponseMessage) and not message.completed:
			message.completed = True
			logger.debug(f"Task {self.task_id}: finalized open stream {message.id} ({len(message.content)} chars)")
			return message
		return None

	# Removal and reads

	def remove(self, ids: list[str]) -> list[str]:
		"""
		Remove messages by id.

		Raises:
			MessageRemovalError: If an id is the open streamed response

		Returns:
			Removed ids in history order
		"""
		wanted = set(ids)
		if self.open_stream_id is not None and self.open_stream_id in wanted:
			raise MessageRemovalError(f"Message {self.open_stream_id} is still streaming")

		removed = [m.id for m in self._messages if m.id in wanted]
		if removed:
			self._messages = [m for m in self._messages if m.id not in wanted]
			for message_id in removed:
				del self._by_id[message_id]
			logger.debug(f"Task {self.task_id}: removed {len(removed)} messages. Total messages: {len(self._messages)}")
		return removed

	def page(self, offset: int = 0, limit: Optional[int] = None) -> list:
		offset = max(offset, 0)
		if limit is None:
			return self._messages[offset:]
		return self._messages[offset:offset + max(limit, 0)]

	def messages_up_to(self, message_id: str) -> list:
		"""Messages from the start up to and including `message_id`."""
		for index, message in enumerate(self._messages):
			if message.id == message_id:
				return self._messages[:index + 1]
		return list(self._messages)

	# Files

	def add_file(self, file: ContextFile, base_dir: str) -> bool:
		absolute = (Path(base_dir) / file.path).resolve()
		for existing in self.files:
			if (Path(base_dir) / existing.path).resolve() == absolute:
				return False
		self.files.append(file)
		return True

	def drop_file(self, path: str, base_dir: str) -> bool:
		absolute = (Path(base_dir) / path).resolve()
		before = len(self.files)
		self.files = [f for f in self.files if (Path(base_dir) / f.path).resolve() != absolute]
		return len(self.files) != before

	def set_files(self, files: list[ContextFile]) -> None:
		self.files = list(files)
