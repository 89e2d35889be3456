"""
Agent Loop - Drives a task through model turns and tool calls.

Each iteration sends the task history to the provider, streams the reply
into the task, then runs every requested tool through Task.invoke_tool.
The loop ends when the model asks for no tools, the iteration budget is
spent, or the step's signal fires.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..approval import ApprovalGate
from ..hooks.events import HookEvent
from ..messages import PromptContext, new_id, to_llm_messages
from .profile import AgentProfile
from .provider import AgentProvider, AgentRequest
from .signal import AbortSignal, OperationAborted
from .tools import ToolSet

if TYPE_CHECKING:
	from ..task.task import Task

logger = logging.getLogger(__name__)


class AgentRunner:
	"""Runs the agent loop for tasks against one provider."""

	def __init__(self, provider: AgentProvider):
		self.provider = provider

	def tools_for(self, task: "Task", profile: AgentProfile) -> ToolSet:
		"""Project tools allowed under the profile, plus subagent delegation."""
		from ..orchestrator.delegator import SubagentDelegator

		tools = task.project.tools.for_profile(profile)
		if profile.use_subagents and not profile.is_subagent:
			delegator = SubagentDelegator(task, profile)
			if delegator.available:
				tools.add(delegator.tool())
		return tools

	async def run(
		self,
		task: "Task",
		profile: AgentProfile,
		prompt: str,
		signal: AbortSignal,
		system_prompt: Optional[str] = None,
		prompt_context: Optional[PromptContext] = None,
	) -> None:
		"""
		Run the loop until the model stops requesting tools.

		Raises:
			OperationAborted: If the signal fires
		"""
		started = await task.hook_manager.trigger(
			HookEvent.AGENT_STARTED,
			{"prompt": prompt, "profileId": profile.id},
			task,
		)
		if started.blocked:
			logger.info(f"Agent run for task {task.id} blocked by hook")
			return

		system_prompt = started.event.get("systemPrompt") or system_prompt or profile.system_prompt
		gate = ApprovalGate(task, profile.tool_approvals)
		tools = self.tools_for(task, profile)
		model = profile.model or task.data.main_model

		iteration = 0
		for iteration in range(1, profile.max_iterations + 1):
			if signal.aborted:
				raise OperationAborted(signal.reason or "cancelled")

			request = AgentRequest(
				profile_id=profile.id,
				model=model,
				system_prompt=system_prompt,
				messages=to_llm_messages(task.history.messages),
				tools=tools.definitions(),
			)
			message_id = new_id()

			async def on_chunk(chunk: str, _message_id: str = message_id) -> None:
				await task.process_stream_chunk(_message_id, chunk, prompt_context)

			response = await signal.race(self.provider.generate(request, on_chunk))
			await task.process_stream_completed(
				message_id,
				usage=response.usage,
				content=response.content,
				prompt_context=prompt_context,
			)

			for call in response.tool_calls:
				if signal.aborted:
					raise OperationAborted(signal.reason or "cancelled")
				await task.invoke_tool(call, tools.get(call.name), gate, signal, prompt_context)

			if signal.aborted:
				raise OperationAborted(signal.reason or "cancelled")

			await task.hook_manager.trigger(
				HookEvent.AGENT_STEP_FINISHED,
				{"iteration": iteration, "toolCalls": [c.name for c in response.tool_calls]},
				task,
			)

			if not response.tool_calls:
				break
		else:
			logger.warning(f"Task {task.id}: agent reached max iterations ({profile.max_iterations})")
			await task.add_log_message("warning", f"Agent stopped after {profile.max_iterations} iterations.")

		await task.hook_manager.trigger(
			HookEvent.AGENT_FINISHED,
			{"prompt": prompt, "profileId": profile.id, "iterations": iteration},
			task,
		)
