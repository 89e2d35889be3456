"""
Agent Tools - Tool definitions offered to the agent loop.

A tool is addressed by its key, "<group>/<name>", which is also the key used
by approval policies and instrumentation.
"""

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from ..approval import ApprovalState
from ..messages import TOOL_GROUP_SEPARATOR, PromptContext, new_id

if TYPE_CHECKING:
	from ..task.task import Task
	from .profile import AgentProfile
	from .signal import AbortSignal

TODO_TOOL_GROUP = "todo"
MEMORY_TOOL_GROUP = "memory"


def split_tool_key(key: str) -> tuple[str, str]:
	"""Split "<group>/<name>" into its parts. A bare name has an empty group."""
	group, sep, name = key.partition(TOOL_GROUP_SEPARATOR)
	if not sep:
		return "", key
	return group, name


@dataclass
class ToolCall:
	"""A tool invocation requested by the model."""
	name: str
	args: dict[str, Any] = field(default_factory=dict)
	id: str = field(default_factory=new_id)

	@property
	def group(self) -> str:
		return split_tool_key(self.name)[0]

	@property
	def tool_name(self) -> str:
		return split_tool_key(self.name)[1]


@dataclass
class ToolContext:
	"""What a tool's execute function gets besides its arguments."""
	task: "Task"
	signal: "AbortSignal"
	tool_call_id: str
	prompt_context: Optional[PromptContext] = None


@dataclass
class Tool:
	"""
	A callable capability exposed to the model.

	`execute(args, context)` may be sync or async. `describe_approval`
	returns (text, subject) for the approval question; the default asks
	about the tool key.
	"""
	group: str
	name: str
	description: str
	execute: Callable[[dict[str, Any], ToolContext], Any]
	parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
	requires_approval: bool = True
	describe_approval: Optional[Callable[[dict[str, Any]], tuple[str, Optional[str]]]] = None

	@property
	def key(self) -> str:
		return f"{self.group}{TOOL_GROUP_SEPARATOR}{self.name}"

	def approval_question(self, args: dict[str, Any]) -> tuple[str, Optional[str]]:
		if self.describe_approval is not None:
			return self.describe_approval(args)
		return f"Approve tool {self.key}?", None

	async def run(self, args: dict[str, Any], context: ToolContext) -> Any:
		result = self.execute(args, context)
		if inspect.isawaitable(result):
			result = await result
		return result

	def definition(self) -> dict[str, Any]:
		"""Provider-neutral tool definition."""
		return {"name": self.key, "description": self.description, "parameters": self.parameters}


class ToolSet:
	"""Tools keyed by "<group>/<name>", in registration order."""

	def __init__(self, tools: Optional[list[Tool]] = None):
		self._tools: dict[str, Tool] = {}
		for tool in tools or []:
			self.add(tool)

	def add(self, tool: Tool) -> None:
		self._tools[tool.key] = tool

	def remove(self, key: str) -> Optional[Tool]:
		return self._tools.pop(key, None)

	def get(self, key: str) -> Optional[Tool]:
		return self._tools.get(key)

	def keys(self) -> list[str]:
		return list(self._tools)

	def __iter__(self) -> Iterator[Tool]:
		return iter(list(self._tools.values()))

	def __len__(self) -> int:
		return len(self._tools)

	def __contains__(self, key: str) -> bool:
		return key in self._tools

	def for_profile(self, profile: "AgentProfile") -> "ToolSet":
		"""
		Tools offered under a profile.

		Tools whose approval policy is "never" are left out entirely, as are
		the todo and memory groups when the profile turns them off.
		"""
		selected = ToolSet()
		for tool in self._tools.values():
			if profile.tool_approvals.get(tool.key) == ApprovalState.NEVER:
				continue
			if tool.group == TODO_TOOL_GROUP and not profile.use_todo_tools:
				continue
			if tool.group == MEMORY_TOOL_GROUP and not profile.use_memory_tools:
				continue
			selected.add(tool)
		return selected

	def definitions(self) -> list[dict[str, Any]]:
		return [tool.definition() for tool in self._tools.values()]
