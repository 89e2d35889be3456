"""Shared test fixtures and helpers for task-orchestrator tests."""

import asyncio
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional

from task_orchestrator.agent.profile import ProfileRegistry
from task_orchestrator.agent.provider import AgentRequest, AgentResponse
from task_orchestrator.config import Config
from task_orchestrator.hooks.manager import HookManager
from task_orchestrator.instrumentation import ToolCallStore
from task_orchestrator.project.manager import ProjectManager


class ScriptedProvider:
	"""
	Agent provider that replays queued responses.

	Entries are AgentResponse objects (their content is streamed in two
	chunks) or async callables `(request, on_chunk) -> AgentResponse` for
	tests that need to block or stream by hand. Every request is recorded.
	"""

	def __init__(self, responses: Optional[list] = None):
		self.responses: list = list(responses or [])
		self.requests: list[AgentRequest] = []

	async def generate(self, request: AgentRequest, on_chunk=None) -> AgentResponse:
		self.requests.append(request)
		if not self.responses:
			return AgentResponse(content="done")
		response = self.responses.pop(0)
		if callable(response):
			return await response(request, on_chunk)
		if on_chunk is not None and response.content:
			half = len(response.content) // 2
			await on_chunk(response.content[:half])
			await on_chunk(response.content[half:])
		return response


class FakeChannel:
	"""In-memory connector channel that records what was sent."""

	def __init__(self, channel_id: str = "channel-1"):
		self.id = channel_id
		self.sent: list[dict[str, Any]] = []
		self.closed = False

	async def send_json(self, data: dict[str, Any]) -> None:
		self.sent.append(data)

	async def close(self) -> None:
		self.closed = True

	def actions(self) -> list[str]:
		return [m["action"] for m in self.sent]

	def last(self, action: str) -> Optional[dict[str, Any]]:
		for message in reversed(self.sent):
			if message["action"] == action:
				return message
		return None


def make_config(tmp_path: Path) -> Config:
	return Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data")


def make_manager(
	tmp_path: Path,
	provider: Optional[ScriptedProvider] = None,
	profiles: Optional[ProfileRegistry] = None,
) -> ProjectManager:
	"""ProjectManager with isolated dirs and no hook directory polling."""
	config = make_config(tmp_path)
	return ProjectManager(
		config,
		provider=provider or ScriptedProvider(),
		profiles=profiles or ProfileRegistry(),
		hook_manager=HookManager(config.global_hooks_dir, watch=False),
		tool_call_store=ToolCallStore(str(config.tool_calls_db_path)),
	)


def write_hook(directory: Path, name: str, source: str) -> Path:
	"""Write a hook file into a hooks directory."""
	directory.mkdir(parents=True, exist_ok=True)
	path = directory / f"{name}.py"
	path.write_text(source)
	return path


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
	"""Yield to the event loop until `predicate()` holds."""
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError("condition not reached before timeout")
		await asyncio.sleep(0.01)


def init_git_repo(path: Path) -> None:
	"""Initialise a repository at path holding one committed README."""
	path.mkdir(parents=True, exist_ok=True)

	def run(*args: str) -> None:
		subprocess.run(["git", *args], cwd=str(path), capture_output=True, check=True)

	run("init", "--quiet")
	run("config", "user.email", "tasks@example.com")
	run("config", "user.name", "Task Orchestrator Tests")
	(path / "README.md").write_text("# Project\n")
	run("add", "README.md")
	run("commit", "--quiet", "-m", "Initial commit")


def capture_tools(config: Any, register_fn: Callable) -> dict:
	"""Register tools on a mock MCP and return the captured tool functions."""
	captured = {}

	class MockMCP:
		def tool(self):
			def decorator(fn):
				captured[fn.__name__] = fn
				return fn
			return decorator

	register_fn(MockMCP(), config)
	return captured
