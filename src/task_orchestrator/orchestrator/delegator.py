"""
Subagent Delegator - Runs a delegated prompt on an ephemeral child task.

Responsibilities:
- Exposing `subagents/run_task` for the subagent profiles a main profile may use
- Building the restricted child profile
- Seeding the child with context derived from earlier delegations
- Running the child agent loop under a signal linked to the parent step
"""

import asyncio
import logging
from typing import Any, Optional

from ..agent.profile import AgentProfile, ContextMemoryMode, InvocationMode
from ..agent.signal import AbortSignal, OperationAborted
from ..agent.tools import Tool, ToolContext
from ..hooks.events import HookEvent
from ..messages import PromptContext, PromptGroup, messages_to_list, new_id
from ..task.history import TaskHistory
from ..task.models import AGENT_MODE, TaskData
from ..task.task import Task
from .context_builder import SUBAGENTS_TOOL_GROUP, SUBAGENTS_TOOL_RUN_TASK, derive_subagent_context

logger = logging.getLogger(__name__)

REUSE_CONTEXT_SUFFIX = "\n\nMake sure to reuse the previous conversation if possible."
ERROR_GROUP_COLOR = "#b5443a"


def build_subagent_profile(target: AgentProfile) -> AgentProfile:
	"""Child profile: no nested delegation, no todo tools, memory tools only if enabled."""
	return target.model_copy(update={
		"use_subagents": False,
		"use_todo_tools": False,
		"use_memory_tools": target.use_memory_tools,
		"is_subagent": True,
	})


class SubagentDelegator:
	"""
	Delegates prompts from one task's agent step to subagent profiles.

	Usage:
		delegator = SubagentDelegator(task, main_profile)
		if delegator.available:
			tools.add(delegator.tool())
	"""

	def __init__(self, task: Task, main_profile: AgentProfile):
		self.task = task
		self.main_profile = main_profile
		self.subagents = task.project.profiles.subagents_for(main_profile)

	@property
	def available(self) -> bool:
		return bool(self.subagents)

	def find(self, subagent_id: str) -> Optional[AgentProfile]:
		for profile in self.subagents:
			if profile.subagent_id == subagent_id:
				return profile
		return None

	def describe(self) -> str:
		automatic = [p for p in self.subagents if p.subagent.invocation_mode == InvocationMode.AUTOMATIC]
		on_demand = [p for p in self.subagents if p.subagent.invocation_mode == InvocationMode.ON_DEMAND]

		lines = ["Delegates a specific task to a subagent. You have access to the following subagents:"]
		if automatic:
			lines.append("")
			lines.append("Use automatically when the task fits:")
			for profile in automatic:
				lines.append(f"- {profile.subagent_id} ({profile.name}): {profile.subagent.description}")
		if on_demand:
			lines.append("")
			lines.append("Use only when the user asks for them:")
			for profile in on_demand:
				lines.append(f"- {profile.subagent_id} ({profile.name})")
		lines.append("")
		lines.append(
			"When the user asks for a subagent by name, pick the closest match. "
			"The subagent gathers its own context; provide only `prompt`."
		)
		return "\n".join(lines)

	def tool(self) -> Tool:
		return Tool(
			group=SUBAGENTS_TOOL_GROUP,
			name=SUBAGENTS_TOOL_RUN_TASK,
			description=self.describe(),
			execute=self.run_task,
			parameters={
				"type": "object",
				"properties": {
					"subagentId": {"type": "string", "description": "The ID of the subagent to use."},
					"prompt": {"type": "string", "description": "Self-contained description of the task."},
				},
				"required": ["subagentId", "prompt"],
			},
			requires_approval=False,
		)

	async def run_task(self, args: dict[str, Any], context: ToolContext) -> Any:
		"""Execute `subagents/run_task`."""
		subagent_id = str(args.get("subagentId", ""))
		prompt = str(args.get("prompt", ""))

		target = self.find(subagent_id)
		if target is None:
			return f"Error: Subagent with ID '{subagent_id}' not found or not enabled."

		profile = build_subagent_profile(target)
		group = PromptGroup(name=f"Running {target.name}", color=target.subagent.color)
		prompt_context = PromptContext(group=group)
		await self.task.update_tool_message(context.tool_call_id, prompt_context)

		await self.task.hook_manager.trigger(
			HookEvent.SUBAGENT_STARTED,
			{"subagentId": subagent_id, "prompt": prompt},
			self.task,
		)

		seed = derive_subagent_context(subagent_id, target.subagent.context_memory, self.task.history.messages)
		effective_prompt = f"{prompt}{REUSE_CONTEXT_SUFFIX}" if seed else prompt
		if target.subagent.context_memory != ContextMemoryMode.OFF:
			logger.info(f"Subagent {subagent_id}: seeded with {len(seed)} context messages")

		try:
			messages = await self.run_subagent(
				profile,
				effective_prompt,
				seed,
				target.subagent.system_prompt or None,
				context.signal,
				prompt_context,
			)
		except OperationAborted:
			prompt_context.group = group.model_copy(update={"finished": True})
			await self.task.update_tool_message(context.tool_call_id, prompt_context)
			raise
		except Exception as e:
			logger.error(f"Error running subagent {subagent_id}: {e}", exc_info=True)
			prompt_context.group = group.model_copy(update={
				"name": "Error",
				"color": ERROR_GROUP_COLOR,
				"finished": True,
			})
			result: dict[str, Any] = {
				"error": f"Error running subagent '{target.name}': {e}",
				"promptContext": prompt_context.model_dump(mode="json"),
			}
		else:
			prompt_context.group = group.model_copy(update={"name": f"{target.name} finished", "finished": True})
			result = {
				"messages": messages_to_list(messages),
				"promptContext": prompt_context.model_dump(mode="json"),
			}

		await self.task.update_tool_message(context.tool_call_id, prompt_context)
		await self.task.hook_manager.trigger(
			HookEvent.SUBAGENT_FINISHED,
			{"subagentId": subagent_id, "prompt": prompt, "result": result},
			self.task,
		)
		return result

	async def run_subagent(
		self,
		profile: AgentProfile,
		prompt: str,
		seed: list,
		system_prompt: Optional[str],
		signal: AbortSignal,
		prompt_context: PromptContext,
	) -> list:
		"""
		Run `prompt` on a fresh child task.

		Returns:
			The messages the child produced after its prompt
		"""
		parent = self.task
		data = TaskData(
			id=new_id(),
			parent_id=parent.id,
			name=f"{profile.name} (subagent)",
			project_dir=parent.project_dir,
			working_mode=parent.data.working_mode,
			worktree_path=parent.data.worktree_path,
			mode=AGENT_MODE,
			agent_profile_id=profile.id,
			auto_approve=parent.data.auto_approve,
		)
		child = Task(parent.project, data, history=TaskHistory(data.id, messages=seed), parent=parent, persist=False)
		parent.add_child(child)
		child_signal = AbortSignal(parent=signal)

		await child.add_user_message(prompt, mode=AGENT_MODE, prompt_context=prompt_context)
		start = len(child.history)

		logger.info(f"Task {parent.id}: running subagent {profile.subagent_id} as {child.id}")
		run = asyncio.create_task(
			child.run_agent(prompt, profile, child_signal, system_prompt=system_prompt, prompt_context=prompt_context),
			name=f"subagent-{child.id}",
		)
		try:
			await run
		finally:
			child_signal.detach()
			parent.remove_child(child)

		return child.history.messages[start:]
