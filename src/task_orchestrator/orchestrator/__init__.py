"""
Orchestrator module - Subagent delegation.

Components:
- context_builder: Derives subagent seed context from task history
- delegator: Runs delegated prompts on ephemeral child tasks
"""

from .context_builder import SUBAGENTS_TOOL_KEY, build_tool_result_index, derive_subagent_context
from .delegator import SubagentDelegator, build_subagent_profile

__all__ = [
	"SUBAGENTS_TOOL_KEY",
	"SubagentDelegator",
	"build_subagent_profile",
	"build_tool_result_index",
	"derive_subagent_context",
]
