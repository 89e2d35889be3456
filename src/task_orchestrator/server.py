"""task-orchestrator MCP server."""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import Config, get_config
from .tools import register_all_tools


def create_server(config: Optional[Config] = None) -> FastMCP:
	"""Build the MCP server with every task tool registered."""
	config = config or get_config()
	mcp = FastMCP("task-orchestrator")
	register_all_tools(mcp, config)
	return mcp
