"""
Hook events and the outcome of a single handler.

A handler's return value is interpreted as one of three outcomes:
- Continue(event): keep going with a (possibly updated) event value
- Block(): stop the chain and block the operation
- Override(value): stop the chain with a definite answer (approvals, questions)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class HookEvent(str, Enum):
	"""Lifecycle events handlers can subscribe to, by function name."""
	TASK_CREATED = "on_task_created"
	TASK_INITIALIZED = "on_task_initialized"
	TASK_CLOSED = "on_task_closed"
	PROMPT_SUBMITTED = "on_prompt_submitted"
	PROMPT_STARTED = "on_prompt_started"
	PROMPT_FINISHED = "on_prompt_finished"
	AGENT_STARTED = "on_agent_started"
	AGENT_FINISHED = "on_agent_finished"
	AGENT_STEP_FINISHED = "on_agent_step_finished"
	TOOL_CALLED = "on_tool_called"
	TOOL_FINISHED = "on_tool_finished"
	FILE_ADDED = "on_file_added"
	FILE_DROPPED = "on_file_dropped"
	COMMAND_EXECUTED = "on_command_executed"
	QUESTION_ASKED = "on_question_asked"
	QUESTION_ANSWERED = "on_question_answered"
	HANDLE_APPROVAL = "on_handle_approval"
	SUBAGENT_STARTED = "on_subagent_started"
	SUBAGENT_FINISHED = "on_subagent_finished"
	RESPONSE_MESSAGE_PROCESSED = "on_response_message_processed"


HOOK_FUNCTION_NAMES = frozenset(e.value for e in HookEvent)


@dataclass(frozen=True)
class Continue:
	event: Mapping[str, Any]


@dataclass(frozen=True)
class Block:
	pass


@dataclass(frozen=True)
class Override:
	value: Any


HookOutcome = Union[Continue, Block, Override]


@dataclass(frozen=True)
class HookResult:
	"""Final value of a trigger: the folded event plus block/override state."""
	event: dict[str, Any] = field(default_factory=dict)
	blocked: bool = False
	result: Any = None


def interpret(hook_event: HookEvent, returned: Any, current: Mapping[str, Any]) -> HookOutcome:
	"""Map a handler's raw return value to an outcome."""
	if returned is False:
		if hook_event in (HookEvent.HANDLE_APPROVAL, HookEvent.QUESTION_ASKED):
			return Override(False)
		return Block()

	if returned is True and hook_event == HookEvent.HANDLE_APPROVAL:
		return Override(True)

	if isinstance(returned, str) and hook_event == HookEvent.QUESTION_ASKED:
		return Override(returned)

	if isinstance(returned, Mapping):
		return Continue({**current, **returned})

	return Continue(current)
