"""MCP tools exposed by the task-orchestrator server."""

from mcp.server.fastmcp import FastMCP

from ..config import Config
from .core import register_core_tools
from .tasks import register_task_tools


def register_all_tools(mcp: FastMCP, config: Config) -> None:
	for register in (register_core_tools, register_task_tools):
		register(mcp, config)
