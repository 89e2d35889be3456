"""
Context Builder - Derives a subagent's seed context from a task's history.

Previous delegations live in the parent's history as finished
`subagents/run_task` tool messages whose result carries the messages the
subagent produced. Nothing here mutates history.
"""

import logging
from typing import Any

from ..agent.profile import ContextMemoryMode
from ..messages import ToolMessage, ToolStatus, UserMessage, message_from_dict

logger = logging.getLogger(__name__)

SUBAGENTS_TOOL_GROUP = "subagents"
SUBAGENTS_TOOL_RUN_TASK = "run_task"
SUBAGENTS_TOOL_KEY = f"{SUBAGENTS_TOOL_GROUP}/{SUBAGENTS_TOOL_RUN_TASK}"


def _is_delegation(message: Any) -> bool:
	return (
		isinstance(message, ToolMessage)
		and message.key == SUBAGENTS_TOOL_KEY
		and message.status == ToolStatus.FINISHED
	)


def _result_messages(result: Any) -> list:
	if not isinstance(result, dict):
		return []
	parsed = []
	for entry in result.get("messages") or []:
		try:
			parsed.append(entry if not isinstance(entry, dict) else message_from_dict(entry))
		except ValueError as e:
			logger.warning(f"Skipping unreadable subagent result message: {e}")
	return parsed


def build_tool_result_index(messages: list) -> dict[str, list]:
	"""Map each finished run_task tool-call id to the messages its subagent produced."""
	index: dict[str, list] = {}
	for message in messages:
		if _is_delegation(message):
			index[message.id] = _result_messages(message.result)
	return index


def derive_subagent_context(subagent_id: str, mode: ContextMemoryMode, messages: list) -> list:
	"""
	Seed context for the next delegation to `subagent_id`.

	Each earlier delegation that produced messages contributes its prompt as
	a user message, followed by all of its result messages (full-context)
	or only the last one (last-message). Mode "off" yields nothing.
	"""
	mode = ContextMemoryMode(mode)
	if mode == ContextMemoryMode.OFF:
		return []

	index = build_tool_result_index(messages)
	context: list = []
	for message in messages:
		if not _is_delegation(message) or message.args.get("subagentId") != subagent_id:
			continue
		results = index.get(message.id) or []
		if not results:
			continue
		context.append(UserMessage(id=f"{message.id}-prompt", content=str(message.args.get("prompt", ""))))
		if mode == ContextMemoryMode.FULL_CONTEXT:
			context.extend(results)
		else:
			context.append(results[-1])

	logger.debug(f"Derived {len(context)} context messages for subagent {subagent_id} ({mode.value})")
	return context
