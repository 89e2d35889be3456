"""
Connector wire protocol - JSON messages exchanged with the code-editing subprocess.

Every message is a JSON object with an `action` discriminator and camelCase
keys. Inbound messages are validated into typed models; anything unknown or
malformed is logged and dropped.
"""

import json
import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..messages import PromptContext, UsageReport

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class WireContextFile(WireModel):
	path: str
	read_only: bool = False


class WireUsageReport(WireModel):
	model: str = ""
	sent_tokens: int = 0
	received_tokens: int = 0
	cache_read_tokens: int = 0
	cache_write_tokens: int = 0
	message_cost: float = 0.0

	def to_usage(self) -> UsageReport:
		return UsageReport(**self.model_dump())


# Inbound

class InitMessage(WireModel):
	action: Literal["init"]
	base_dir: str
	task_id: Optional[str] = None
	source: str = ""
	listen_to: list[str] = Field(default_factory=list)
	input_history_file: Optional[str] = None
	context_files: list[WireContextFile] = Field(default_factory=list)


class ResponseEvent(WireModel):
	"""A streamed chunk (finished=False) or the completion of a response."""
	action: Literal["response"]
	message_id: str
	content: str = ""
	finished: bool = False
	usage_report: Optional[WireUsageReport] = None
	reflected_message: Optional[str] = None
	edited_files: list[str] = Field(default_factory=list)
	prompt_context: Optional[PromptContext] = None


class AddMessageEvent(WireModel):
	action: Literal["add-message"]
	role: Literal["user", "assistant"] = "user"
	content: str
	usage_report: Optional[WireUsageReport] = None


class AskQuestionEvent(WireModel):
	action: Literal["ask-question"]
	question: str
	subject: Optional[str] = None
	default_answer: str = "y"
	answers: list[dict[str, str]] = Field(default_factory=list)
	is_group_question: bool = False


class SetModelsEvent(WireModel):
	action: Literal["set-models"]
	main_model: Optional[str] = None
	weak_model: Optional[str] = None
	architect_model: Optional[str] = None
	edit_format: Optional[str] = None


class UpdateContextFilesEvent(WireModel):
	action: Literal["update-context-files"]
	files: list[WireContextFile] = Field(default_factory=list)


class AddFileEvent(WireModel):
	action: Literal["add-file"]
	path: str
	read_only: bool = False


class DropFileEvent(WireModel):
	action: Literal["drop-file"]
	path: str


class CommandOutputEvent(WireModel):
	action: Literal["command-output"]
	phase: Literal["start", "chunk", "finish"]
	command: str = ""
	output: str = ""


class TokensInfoEvent(WireModel):
	action: Literal["tokens-info"]
	info: dict[str, Any] = Field(default_factory=dict)


class PromptFinishedEvent(WireModel):
	action: Literal["prompt-finished"]
	prompt_id: Optional[str] = None


class UpdateRepoMapEvent(WireModel):
	action: Literal["update-repo-map"]
	repo_map: str = ""


class UpdateAutocompletionEvent(WireModel):
	action: Literal["update-autocompletion"]
	words: list[str] = Field(default_factory=list)


class SubscribeEventsEvent(WireModel):
	action: Literal["subscribe-events"]
	event_types: Optional[list[str]] = None
	base_dirs: Optional[list[str]] = None


class UnsubscribeEventsEvent(WireModel):
	action: Literal["unsubscribe-events"]


class LogEvent(WireModel):
	action: Literal["log"]
	level: str = "info"
	message: str = ""
	finished: bool = True
	prompt_context: Optional[PromptContext] = None


InboundMessage = Annotated[
	Union[
		InitMessage,
		ResponseEvent,
		AddMessageEvent,
		AskQuestionEvent,
		SetModelsEvent,
		UpdateContextFilesEvent,
		AddFileEvent,
		DropFileEvent,
		CommandOutputEvent,
		TokensInfoEvent,
		PromptFinishedEvent,
		UpdateRepoMapEvent,
		UpdateAutocompletionEvent,
		SubscribeEventsEvent,
		UnsubscribeEventsEvent,
		LogEvent,
	],
	Field(discriminator="action"),
]

INBOUND_ACTIONS = frozenset({
	"init",
	"response",
	"add-message",
	"ask-question",
	"set-models",
	"update-context-files",
	"add-file",
	"drop-file",
	"command-output",
	"tokens-info",
	"prompt-finished",
	"update-repo-map",
	"update-autocompletion",
	"subscribe-events",
	"unsubscribe-events",
	"log",
})

_inbound_adapter: TypeAdapter = TypeAdapter(InboundMessage)


def parse_message(raw: Union[str, bytes, dict]) -> Optional[InboundMessage]:
	"""
	Validate one inbound message.

	Returns:
		The typed message, or None if it is malformed or its action unknown
	"""
	if isinstance(raw, (str, bytes)):
		try:
			data = json.loads(raw)
		except ValueError as e:
			logger.warning(f"Dropping malformed connector message: {e}")
			return None
	else:
		data = raw

	if not isinstance(data, dict):
		logger.warning(f"Dropping connector message that is not an object: {type(data).__name__}")
		return None

	action = data.get("action")
	if action not in INBOUND_ACTIONS:
		logger.warning(f"Unknown connector action: {action!r}")
		return None

	try:
		return _inbound_adapter.validate_python(data)
	except ValidationError as e:
		logger.warning(f"Invalid '{action}' message: {e.error_count()} errors: {e.errors()[0]['msg']}")
		return None


# Outbound

OUTBOUND_ACTIONS = frozenset({
	"prompt",
	"answer-question",
	"interrupt-response",
	"add-file",
	"drop-file",
	"add-message",
	"clear-task",
	"event",
})


def build_outbound(action: str, **fields: Any) -> dict[str, Any]:
	"""
	Build an outbound message. Keyword names are sent camelCased; None values are omitted.

	Raises:
		ValueError: If `action` is not an outbound action
	"""
	if action not in OUTBOUND_ACTIONS:
		raise ValueError(f"Unknown outbound action: {action}")
	message: dict[str, Any] = {"action": action}
	for key, value in fields.items():
		if value is not None:
			message[to_camel(key)] = value
	return message
