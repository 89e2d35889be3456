"""Server status tool."""

import json

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..project.manager import get_project_manager


def register_core_tools(mcp: FastMCP, config: Config) -> None:

	@mcp.tool()
	async def health_check() -> str:
		"""
		Report whether the orchestrator is up, which projects are open and
		where its connector websocket listens.
		"""
		manager = get_project_manager()
		return json.dumps({
			"server": "running",
			"open_projects": manager.list_projects(),
			"profiles": [profile.id for profile in manager.profiles.list_profiles()],
			"connector": f"ws://{config.connector_host}:{config.connector_port}/connector",
			"paths": {
				"config": str(config.config_dir),
				"data": str(config.data_dir),
				"global_hooks": str(config.global_hooks_dir) if config.global_hooks_dir.is_dir() else None,
			},
			"instrumented": manager.tool_call_store is not None,
		}, indent=2)
