"""
Approval Gate - Decides whether a proposed tool invocation may proceed.

Resolution order:
1. on_handle_approval hooks; a definite boolean wins
2. The stored policy for the tool key: always / never
3. Answers remembered for the task ("a" = always, kept across steps) and task auto-approve
4. Ask: suspend the task and emit a question, resume on the answer

An aborted step resolves a pending question as rejected.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .hooks.events import HookEvent
from .task.models import QuestionData

if TYPE_CHECKING:
	from .agent.signal import AbortSignal
	from .task.task import Task

logger = logging.getLogger(__name__)

APPROVAL_ANSWERS = [("y", "Yes"), ("n", "No"), ("a", "Always")]


class ApprovalState(str, Enum):
	"""Stored approval policy for a tool key."""
	ALWAYS = "always"
	ASK = "ask"
	NEVER = "never"


class ApprovalGate:
	"""Approval decisions for one task under one tool-approval policy."""

	def __init__(self, task: "Task", tool_approvals: Optional[dict[str, ApprovalState]] = None):
		self.task = task
		self.tool_approvals = dict(tool_approvals or {})

	def policy_for(self, key: str) -> ApprovalState:
		return ApprovalState(self.tool_approvals.get(key, ApprovalState.ASK))

	async def handle_approval(
		self,
		key: str,
		text: str,
		subject: Optional[str] = None,
		signal: Optional["AbortSignal"] = None,
	) -> tuple[bool, Optional[str]]:
		"""
		Resolve an approval request.

		Args:
			key: Tool key (<tool-group>/<tool-name>)
			text: Human-readable question text
			subject: Optional detail shown with the question (e.g. command)
			signal: Abort signal of the enclosing step

		Returns:
			Tuple of (approved, user_supplied_text)
		"""
		hook_result = await self.task.hook_manager.trigger(
			HookEvent.HANDLE_APPROVAL,
			{"key": key, "text": text, "subject": subject},
			self.task,
		)
		if isinstance(hook_result.result, bool):
			logger.info(f"Approval for {key} decided by hook: {hook_result.result}")
			return hook_result.result, None

		policy = self.policy_for(key)
		if policy == ApprovalState.NEVER:
			logger.info(f"Tool {key} rejected by 'never' policy")
			return False, None
		if policy == ApprovalState.ALWAYS:
			return True, None
		if key in self.task.always_approved:
			return True, None
		if self.task.data.auto_approve:
			logger.debug(f"Tool {key} auto-approved for task {self.task.id}")
			return True, None

		if signal is not None and signal.aborted:
			return False, None

		question = QuestionData(
			text=text,
			subject=subject,
			key=key,
			default_answer="y",
			answers=[{"value": value, "label": label} for value, label in APPROVAL_ANSWERS],
			is_approval=True,
		)
		answer, user_input = await self.task.ask_question(question, signal=signal)
		normalized = (answer or "").strip().lower()

		if normalized in ("a", "always"):
			self.task.always_approved.add(key)
			return True, None
		if normalized in ("y", "yes"):
			return True, None
		return False, user_input
