"""Agent loop building blocks. AgentRunner lives in agent.loop."""

from .profile import AgentProfile, ContextMemoryMode, ProfileRegistry, SubagentConfig, load_profiles
from .provider import AgentProvider, AgentRequest, AgentResponse
from .signal import AbortSignal, OperationAborted
from .tools import Tool, ToolCall, ToolContext, ToolSet

__all__ = [
	"AbortSignal",
	"AgentProfile",
	"AgentProvider",
	"AgentRequest",
	"AgentResponse",
	"ContextMemoryMode",
	"OperationAborted",
	"ProfileRegistry",
	"SubagentConfig",
	"Tool",
	"ToolCall",
	"ToolContext",
	"ToolSet",
	"load_profiles",
]
