"""
Context Messages - Pydantic schemas for task conversation history.

A task's history is an ordered list of typed messages. Each message has a
stable id used for deduplication and UI correlation, and an optional
PromptContext used to cluster related messages (for example a subagent run).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

TOOL_GROUP_SEPARATOR = "/"


def new_id() -> str:
	return str(uuid.uuid4())


def _now() -> str:
	return datetime.now().isoformat()


class ToolStatus(str, Enum):
	"""Lifecycle of a tool message."""
	PENDING = "pending"
	EXECUTING = "executing"
	FINISHED = "finished"


class PromptGroup(BaseModel):
	"""Presentation cluster for related messages, opaque to orchestration."""
	id: str = Field(default_factory=new_id)
	name: str = ""
	color: Optional[str] = None
	finished: bool = False


class PromptContext(BaseModel):
	"""Correlation token plus optional group."""
	id: str = Field(default_factory=new_id)
	group: Optional[PromptGroup] = None


class UsageReport(BaseModel):
	"""Token and cost accounting for one response."""
	model: str = ""
	sent_tokens: int = 0
	received_tokens: int = 0
	cache_read_tokens: int = 0
	cache_write_tokens: int = 0
	message_cost: float = 0.0


class UserMessage(BaseModel):
	type: Literal["user"] = "user"
	id: str = Field(default_factory=new_id)
	created_at: str = Field(default_factory=_now)
	prompt_context: Optional[PromptContext] = None
	content: str
	mode: str = "agent"


class ResponseMessage(BaseModel):
	"""Assistant response; accumulates chunks until completed."""
	type: Literal["response"] = "response"
	id: str = Field(default_factory=new_id)
	created_at: str = Field(default_factory=_now)
	prompt_context: Optional[PromptContext] = None
	content: str = ""
	completed: bool = False
	usage: Optional[UsageReport] = None
	reflected_message: Optional[str] = None
	edited_files: list[str] = Field(default_factory=list)


class ToolMessage(BaseModel):
	"""Tool invocation and its result. id is the tool-call id."""
	type: Literal["tool"] = "tool"
	id: str = Field(default_factory=new_id)
	created_at: str = Field(default_factory=_now)
	prompt_context: Optional[PromptContext] = None
	group: str
	name: str
	args: dict[str, Any] = Field(default_factory=dict)
	status: ToolStatus = ToolStatus.PENDING
	result: Any = None

	@property
	def key(self) -> str:
		return f"{self.group}{TOOL_GROUP_SEPARATOR}{self.name}"


class LogMessage(BaseModel):
	type: Literal["log"] = "log"
	id: str = Field(default_factory=new_id)
	created_at: str = Field(default_factory=_now)
	prompt_context: Optional[PromptContext] = None
	level: str = "info"
	message: str = ""
	finished: bool = True


class ReflectedMessage(BaseModel):
	"""Instruction reflected back into the conversation (e.g. lint fixes)."""
	type: Literal["reflected"] = "reflected"
	id: str = Field(default_factory=new_id)
	created_at: str = Field(default_factory=_now)
	prompt_context: Optional[PromptContext] = None
	content: str


ContextMessage = Annotated[
	Union[UserMessage, ResponseMessage, ToolMessage, LogMessage, ReflectedMessage],
	Field(discriminator="type"),
]

_message_adapter: TypeAdapter = TypeAdapter(ContextMessage)
_message_list_adapter: TypeAdapter = TypeAdapter(list[ContextMessage])


def message_from_dict(data: dict) -> ContextMessage:
	"""Validate a dict into the matching message type."""
	return _message_adapter.validate_python(data)


def messages_from_list(data: list[dict]) -> list[ContextMessage]:
	return _message_list_adapter.validate_python(data)


def messages_to_list(messages: list) -> list[dict]:
	return [m.model_dump(mode="json") for m in messages]


def to_llm_messages(messages: list) -> list[dict]:
	"""
	Convert history into provider-neutral chat messages.

	Log messages are diagnostics and never reach the model. Unfinished
	responses and tools are skipped.
	"""
	result: list[dict] = []
	for message in messages:
		if isinstance(message, UserMessage):
			result.append({"role": "user", "content": message.content})
		elif isinstance(message, ReflectedMessage):
			result.append({"role": "user", "content": message.content})
		elif isinstance(message, ResponseMessage):
			if message.completed and message.content:
				result.append({"role": "assistant", "content": message.content})
		elif isinstance(message, ToolMessage):
			if message.status != ToolStatus.FINISHED:
				continue
			result.append({
				"role": "assistant",
				"tool_call": {"id": message.id, "name": message.key, "args": message.args},
			})
			result.append({"role": "tool", "tool_call_id": message.id, "content": message.result})
	return result
