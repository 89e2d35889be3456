"""
Agent Provider - The narrow interface to whatever model backend runs the agent.

No concrete AI client lives in this package. A provider receives the
conversation and tool definitions and returns the assistant text plus any
requested tool calls, streaming text deltas through `on_chunk` as they
arrive.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from ..messages import UsageReport
from .tools import ToolCall

ChunkCallback = Callable[[str], Awaitable[None]]


@dataclass
class AgentRequest:
	profile_id: str
	model: str
	system_prompt: str
	messages: list[dict[str, Any]]
	tools: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class AgentResponse:
	content: str = ""
	tool_calls: list[ToolCall] = field(default_factory=list)
	usage: Optional[UsageReport] = None


@runtime_checkable
class AgentProvider(Protocol):
	async def generate(
		self,
		request: AgentRequest,
		on_chunk: Optional[ChunkCallback] = None,
	) -> AgentResponse:
		...


class UnconfiguredProvider:
	"""Placeholder used when no provider was wired in; every call fails."""

	async def generate(
		self,
		request: AgentRequest,
		on_chunk: Optional[ChunkCallback] = None,
	) -> AgentResponse:
		raise RuntimeError(
			f"No agent provider configured for profile '{request.profile_id}'. "
			"Use a connector mode or pass a provider to ProjectManager."
		)
