"""Tests for the approval gate and tool invocation through the agent loop."""

import asyncio

import pytest

from task_orchestrator.agent.profile import AgentProfile, ProfileRegistry
from task_orchestrator.agent.provider import AgentResponse
from task_orchestrator.agent.signal import AbortSignal
from task_orchestrator.agent.tools import Tool, ToolCall
from task_orchestrator.approval import ApprovalGate, ApprovalState
from task_orchestrator.instrumentation import ToolOutcome
from task_orchestrator.messages import ToolMessage, ToolStatus
from task_orchestrator.task.models import TaskState
from task_orchestrator.task.task import TOOL_ABORTED_RESULT, TOOL_BLOCKED_RESULT, denial_result

from .helpers import ScriptedProvider, make_manager, wait_until, write_hook


def bash_tool(calls: list) -> Tool:
	def execute(args, context):
		calls.append(args)
		return f"ran {args.get('command')}"

	return Tool(
		group="power",
		name="bash",
		description="Run a shell command",
		execute=execute,
		describe_approval=lambda args: ("Run this command?", args.get("command")),
	)


def tool_call_response(call_id: str = "call-1", command: str = "ls") -> AgentResponse:
	return AgentResponse(tool_calls=[ToolCall(name="power/bash", args={"command": command}, id=call_id)])


class TestApprovalGate:
	@pytest.mark.asyncio
	async def test_never_rejects_without_asking(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task, {"power/bash": ApprovalState.NEVER})

		assert await gate.handle_approval("power/bash", "Run?") == (False, None)
		assert task.current_question is None

	@pytest.mark.asyncio
	async def test_always_approves_without_suspending(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task, {"power/bash": ApprovalState.ALWAYS})

		assert await gate.handle_approval("power/bash", "Run?") == (True, None)
		assert task.state == TaskState.IDLE

	@pytest.mark.asyncio
	async def test_auto_approve_task(self, project):
		task = await project.create_task(auto_approve=True)
		gate = ApprovalGate(task)
		assert await gate.handle_approval("power/bash", "Run?") == (True, None)

	@pytest.mark.asyncio
	async def test_ask_suspends_until_answered(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task)

		pending = asyncio.create_task(gate.handle_approval("power/bash", "Run?", subject="ls"))
		await wait_until(lambda: task.current_question is not None)

		assert task.state == TaskState.AWAITING_APPROVAL
		assert task.current_question.subject == "ls"
		assert task.current_question.is_approval is True

		await task.answer_question("y")
		assert await pending == (True, None)
		assert task.current_question is None
		assert task.state == TaskState.IDLE

	@pytest.mark.asyncio
	async def test_rejection_carries_user_input(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task)

		pending = asyncio.create_task(gate.handle_approval("power/bash", "Run?"))
		await wait_until(lambda: task.current_question is not None)
		await task.answer_question("n", "use git status instead")

		assert await pending == (False, "use git status instead")

	@pytest.mark.asyncio
	async def test_always_answer_remembered(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task)

		pending = asyncio.create_task(gate.handle_approval("power/bash", "Run?"))
		await wait_until(lambda: task.current_question is not None)
		await task.answer_question("a")
		assert await pending == (True, None)

		assert await gate.handle_approval("power/bash", "Run again?") == (True, None)
		assert task.current_question is None

	@pytest.mark.asyncio
	async def test_abort_while_waiting_rejects(self, project):
		task = await project.create_task()
		gate = ApprovalGate(task)
		signal = AbortSignal()

		pending = asyncio.create_task(gate.handle_approval("power/bash", "Run?", signal=signal))
		await wait_until(lambda: task.current_question is not None)
		signal.abort("interrupted")

		assert await pending == (False, None)
		assert task.current_question is None

	@pytest.mark.asyncio
	async def test_hook_decision_wins(self, project, project_dir):
		write_hook(
			project_dir / ".task-orchestrator" / "hooks",
			"deny",
			"def on_handle_approval(event, context):\n"
			"\treturn False if event['key'] == 'power/bash' else None\n",
		)
		task = await project.create_task()
		gate = ApprovalGate(task, {"power/bash": ApprovalState.ALWAYS})

		assert await gate.handle_approval("power/bash", "Run?") == (False, None)
		assert task.current_question is None


class TestToolInvocation:
	@pytest.mark.asyncio
	async def test_denied_tool_returns_denial_and_step_continues(self, project, provider):
		calls: list = []
		project.register_tool(bash_tool(calls))
		provider.responses = [tool_call_response(), AgentResponse(content="Skipped it.")]
		task = await project.create_task()

		step = await task.submit_prompt("list files")
		await wait_until(lambda: task.current_question is not None)
		await task.answer_question("n", "not now")
		await step

		tool_message = task.history.get("call-1")
		assert tool_message.status == ToolStatus.FINISHED
		assert tool_message.result == denial_result("not now")
		assert calls == []
		assert len(provider.requests) == 2
		assert task.history.messages[-1].content == "Skipped it."
		assert task.state == TaskState.IDLE
		outcomes = [r.outcome for r in project.tool_call_store.query(task_id=task.id)]
		assert outcomes == [ToolOutcome.DENIED]

	@pytest.mark.asyncio
	async def test_always_answer_outlives_the_step(self, project, provider):
		calls: list = []
		project.register_tool(bash_tool(calls))
		provider.responses = [
			tool_call_response("call-1", "make build"),
			AgentResponse(content="Built."),
			tool_call_response("call-2", "make test"),
			AgentResponse(content="Tested."),
		]
		task = await project.create_task()

		first = await task.submit_prompt("build it")
		await wait_until(lambda: task.current_question is not None)
		await task.answer_question("a")
		await first

		second = await task.submit_prompt("now test it")
		await asyncio.wait_for(second, timeout=2)

		assert task.current_question is None
		assert [c["command"] for c in calls] == ["make build", "make test"]
		assert task.state == TaskState.IDLE

	@pytest.mark.asyncio
	async def test_approved_tool_runs(self, project, provider):
		calls: list = []
		project.register_tool(bash_tool(calls))
		provider.responses = [tool_call_response(command="pwd"), AgentResponse(content="Done.")]
		task = await project.create_task()

		step = await task.submit_prompt("where am I")
		await wait_until(lambda: task.current_question is not None)
		assert task.state == TaskState.AWAITING_APPROVAL
		await task.answer_question("y")
		await step

		assert calls == [{"command": "pwd"}]
		assert task.history.get("call-1").result == "ran pwd"
		tool_results = [m for m in provider.requests[1].messages if m["role"] == "tool"]
		assert tool_results[0]["content"] == "ran pwd"

	@pytest.mark.asyncio
	async def test_abort_while_awaiting_approval(self, project, provider):
		calls: list = []
		project.register_tool(bash_tool(calls))
		provider.responses = [tool_call_response()]
		task = await project.create_task()

		step = await task.submit_prompt("list files")
		await wait_until(lambda: task.current_question is not None)
		await task.interrupt()
		await step

		assert task.history.get("call-1").result == TOOL_ABORTED_RESULT
		assert calls == []
		assert len(provider.requests) == 1
		assert task.state == TaskState.IDLE

	@pytest.mark.asyncio
	async def test_tool_blocked_by_hook(self, project, project_dir, provider):
		write_hook(
			project_dir / ".task-orchestrator" / "hooks",
			"guard",
			"def on_tool_called(event, context):\n"
			"\treturn False\n",
		)
		calls: list = []
		project.register_tool(bash_tool(calls))
		provider.responses = [tool_call_response(), AgentResponse(content="ok")]
		task = await project.create_task()

		step = await task.submit_prompt("try it")
		await step

		assert task.history.get("call-1").result == TOOL_BLOCKED_RESULT
		assert calls == []
		assert project.tool_call_store.query(task_id=task.id)[0].outcome == ToolOutcome.BLOCKED

	@pytest.mark.asyncio
	async def test_unknown_tool_reported(self, project, provider):
		provider.responses = [
			AgentResponse(tool_calls=[ToolCall(name="power/missing", id="call-x")]),
			AgentResponse(content="ok"),
		]
		task = await project.create_task()

		step = await task.submit_prompt("call something")
		await step

		assert task.history.get("call-x").result == "Tool power/missing not found."

	@pytest.mark.asyncio
	async def test_failing_tool_result_is_error_text(self, project, provider):
		def explode(args, context):
			raise ValueError("disk full")

		project.register_tool(Tool(group="power", name="write", description="", execute=explode, requires_approval=False))
		provider.responses = [
			AgentResponse(tool_calls=[ToolCall(name="power/write", id="call-w")]),
			AgentResponse(content="ok"),
		]
		task = await project.create_task()

		step = await task.submit_prompt("write")
		await step

		assert task.history.get("call-w").result == "Error executing tool power/write: disk full"
		assert task.state == TaskState.IDLE

	@pytest.mark.asyncio
	async def test_tool_call_recorded(self, manager, project, provider):
		project.register_tool(Tool(group="power", name="echo", description="", execute=lambda a, c: "echo", requires_approval=False))
		provider.responses = [AgentResponse(tool_calls=[ToolCall(name="power/echo", id="call-e")]), AgentResponse(content="ok")]
		task = await project.create_task()

		step = await task.submit_prompt("echo")
		await step

		records = manager.tool_call_store.query(task_id=task.id)
		assert [r.tool for r in records] == ["power/echo"]
		assert records[0].outcome == ToolOutcome.SUCCESS
		assert records[0].result_preview == "echo"

	@pytest.mark.asyncio
	async def test_reused_call_id_gets_own_message(self, project, provider):
		project.register_tool(Tool(group="power", name="echo", description="", execute=lambda a, c: "echo", requires_approval=False))
		provider.responses = [
			AgentResponse(tool_calls=[ToolCall(name="power/echo", id="dup")]),
			AgentResponse(tool_calls=[ToolCall(name="power/echo", id="dup")]),
			AgentResponse(content="ok"),
		]
		task = await project.create_task()

		step = await task.submit_prompt("echo twice")
		await step

		tool_messages = [m for m in task.history.messages if isinstance(m, ToolMessage)]
		assert len(tool_messages) == 2
		assert tool_messages[0].id == "dup"
		assert tool_messages[1].id != "dup"
		assert all(m.status == ToolStatus.FINISHED and m.result == "echo" for m in tool_messages)


class TestProfileApprovals:
	@pytest.mark.asyncio
	async def test_never_tool_not_offered(self, tmp_path, project_dir):
		profile = AgentProfile(id="safe", name="Safe", tool_approvals={"power/bash": ApprovalState.NEVER})
		provider = ScriptedProvider([AgentResponse(content="ok")])
		manager = make_manager(tmp_path, provider, ProfileRegistry([profile]))
		try:
			project = manager.get_project(str(project_dir))
			project.register_tool(bash_tool([]))
			task = await project.create_task()

			step = await task.submit_prompt("hi")
			await step

			assert provider.requests[0].tools == []
		finally:
			await manager.close()

	@pytest.mark.asyncio
	async def test_always_tool_runs_without_question(self, tmp_path, project_dir):
		profile = AgentProfile(id="trusted", name="Trusted", tool_approvals={"power/bash": ApprovalState.ALWAYS})
		provider = ScriptedProvider([tool_call_response(), AgentResponse(content="ok")])
		manager = make_manager(tmp_path, provider, ProfileRegistry([profile]))
		calls: list = []
		try:
			project = manager.get_project(str(project_dir))
			project.register_tool(bash_tool(calls))
			task = await project.create_task()

			step = await task.submit_prompt("hi")
			await step

			assert calls == [{"command": "ls"}]
			assert isinstance(task.history.get("call-1"), ToolMessage)
		finally:
			await manager.close()
