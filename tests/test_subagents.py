"""Tests for subagent delegation and context derivation."""

import asyncio

import pytest

from task_orchestrator.agent.profile import (
	AgentProfile,
	ContextMemoryMode,
	InvocationMode,
	ProfileRegistry,
	SubagentConfig,
)
from task_orchestrator.agent.provider import AgentResponse
from task_orchestrator.agent.signal import AbortSignal, OperationAborted
from task_orchestrator.agent.tools import ToolCall
from task_orchestrator.messages import ResponseMessage, ToolMessage, ToolStatus, UserMessage, messages_to_list
from task_orchestrator.orchestrator import (
	SUBAGENTS_TOOL_KEY,
	build_subagent_profile,
	build_tool_result_index,
	derive_subagent_context,
)
from task_orchestrator.orchestrator.delegator import REUSE_CONTEXT_SUFFIX
from task_orchestrator.task.models import QuestionData, TaskData, TaskState
from task_orchestrator.task.task import Task

from .helpers import ScriptedProvider, make_manager, wait_until

MAIN = AgentProfile(id="main", name="Main")
REVIEWER = AgentProfile(
	id="reviewer-profile",
	name="Reviewer",
	subagent=SubagentConfig(
		enabled=True,
		description="Reviews code changes",
		context_memory=ContextMemoryMode.FULL_CONTEXT,
		invocation_mode=InvocationMode.AUTOMATIC,
	),
)


def delegation(call_id: str, subagent_id: str, prompt: str, results: list, status=ToolStatus.FINISHED) -> ToolMessage:
	return ToolMessage(
		id=call_id,
		group="subagents",
		name="run_task",
		args={"subagentId": subagent_id, "prompt": prompt},
		status=status,
		result={"messages": messages_to_list(results)},
	)


def run_task_call(call_id: str, prompt: str, subagent_id: str = "reviewer") -> AgentResponse:
	return AgentResponse(tool_calls=[ToolCall(
		name=SUBAGENTS_TOOL_KEY,
		args={"subagentId": subagent_id, "prompt": prompt},
		id=call_id,
	)])


class TestDeriveContext:
	def test_off_yields_nothing(self):
		messages = [delegation("c1", "reviewer", "Review A", [ResponseMessage(content="ok", completed=True)])]
		assert derive_subagent_context("reviewer", ContextMemoryMode.OFF, messages) == []

	def test_full_context_includes_every_result(self):
		results = [
			ResponseMessage(content="Reading files", completed=True),
			ResponseMessage(content="Looks good", completed=True),
		]
		messages = [UserMessage(content="main prompt"), delegation("c1", "reviewer", "Review A", results)]

		context = derive_subagent_context("reviewer", ContextMemoryMode.FULL_CONTEXT, messages)

		assert isinstance(context[0], UserMessage)
		assert context[0].id == "c1-prompt"
		assert context[0].content == "Review A"
		assert [m.content for m in context[1:]] == ["Reading files", "Looks good"]

	def test_last_message_keeps_only_final_result(self):
		results = [
			ResponseMessage(content="Reading files", completed=True),
			ResponseMessage(content="Looks good", completed=True),
		]
		messages = [delegation("c1", "reviewer", "Review A", results)]

		context = derive_subagent_context("reviewer", ContextMemoryMode.LAST_MESSAGE, messages)

		assert [m.content for m in context] == ["Review A", "Looks good"]

	def test_other_subagents_and_unfinished_calls_ignored(self):
		messages = [
			delegation("c1", "writer", "Write docs", [ResponseMessage(content="docs", completed=True)]),
			delegation("c2", "reviewer", "Review B", [ResponseMessage(content="pending", completed=True)], status=ToolStatus.EXECUTING),
			delegation("c3", "reviewer", "Review C", []),
		]
		assert derive_subagent_context("reviewer", ContextMemoryMode.FULL_CONTEXT, messages) == []

	def test_result_index(self):
		messages = [delegation("c1", "reviewer", "Review A", [ResponseMessage(content="ok", completed=True)])]
		index = build_tool_result_index(messages)
		assert list(index) == ["c1"]
		assert index["c1"][0].content == "ok"


class TestSubagentProfile:
	def test_child_profile_restrictions(self):
		child = build_subagent_profile(REVIEWER.model_copy(update={"use_memory_tools": True}))
		assert child.use_subagents is False
		assert child.use_todo_tools is False
		assert child.use_memory_tools is True
		assert child.is_subagent is True
		assert child.id == REVIEWER.id

	def test_subagent_id_from_name(self):
		profile = AgentProfile(id="x", name="Code  Reviewer")
		assert profile.subagent_id == "code-reviewer"


class TestDelegation:
	@pytest.fixture
	async def setup(self, tmp_path, project_dir):
		provider = ScriptedProvider()
		manager = make_manager(tmp_path, provider, ProfileRegistry([MAIN, REVIEWER]))
		project = manager.get_project(str(project_dir))
		yield project, provider
		await manager.close()

	@pytest.mark.asyncio
	async def test_delegation_tool_offered(self, setup):
		project, provider = setup
		provider.responses = [AgentResponse(content="nothing to do")]
		task = await project.create_task()

		step = await task.submit_prompt("hi")
		await step

		tools = provider.requests[0].tools
		assert [t["name"] for t in tools] == [SUBAGENTS_TOOL_KEY]
		assert "reviewer (Reviewer): Reviews code changes" in tools[0]["description"]

	@pytest.mark.asyncio
	async def test_second_run_sees_first_exchange(self, setup):
		project, provider = setup
		provider.responses = [
			run_task_call("call-1", "Review A"),
			AgentResponse(content="Looks good A"),
			run_task_call("call-2", "Review B"),
			AgentResponse(content="Looks good B"),
			AgentResponse(content="All reviews done."),
		]
		task = await project.create_task()

		step = await task.submit_prompt("review both changes")
		await step

		first_child = provider.requests[1]
		assert first_child.messages == [{"role": "user", "content": "Review A"}]
		assert first_child.tools == []

		second_child = provider.requests[3]
		assert second_child.messages == [
			{"role": "user", "content": "Review A"},
			{"role": "assistant", "content": "Looks good A"},
			{"role": "user", "content": "Review B" + REUSE_CONTEXT_SUFFIX},
		]

		result = task.history.get("call-2").result
		assert [m["content"] for m in result["messages"]] == ["Looks good B"]
		assert result["promptContext"]["group"]["finished"] is True
		assert task.history.messages[-1].content == "All reviews done."

	@pytest.mark.asyncio
	async def test_child_task_not_persisted(self, setup):
		project, provider = setup
		provider.responses = [run_task_call("call-1", "Review A"), AgentResponse(content="fine")]
		task = await project.create_task()

		step = await task.submit_prompt("review")
		await step

		assert project.store.list_task_ids() == [task.id]

	@pytest.mark.asyncio
	async def test_unknown_subagent(self, setup):
		project, provider = setup
		provider.responses = [run_task_call("call-1", "Do it", subagent_id="ghost"), AgentResponse(content="ok")]
		task = await project.create_task()

		step = await task.submit_prompt("delegate")
		await step

		assert task.history.get("call-1").result == "Error: Subagent with ID 'ghost' not found or not enabled."

	@pytest.mark.asyncio
	async def test_subagent_failure_reported_as_error(self, setup):
		project, provider = setup

		async def broken(request, on_chunk):
			raise RuntimeError("subagent model down")

		provider.responses = [run_task_call("call-1", "Review A"), broken, AgentResponse(content="ok")]
		task = await project.create_task()

		step = await task.submit_prompt("review")
		await step

		result = task.history.get("call-1").result
		assert "subagent model down" in result["error"]
		assert result["promptContext"]["group"]["name"] == "Error"

	@pytest.mark.asyncio
	async def test_interrupt_reaches_subagent(self, setup):
		project, provider = setup
		release = asyncio.Event()

		async def hang(request, on_chunk):
			await release.wait()
			return AgentResponse(content="never")

		provider.responses = [run_task_call("call-1", "Review A"), hang]
		task = await project.create_task()

		step = await task.submit_prompt("review")
		await wait_until(lambda: len(provider.requests) == 2)
		await task.interrupt()
		await step

		assert task.state == TaskState.IDLE
		assert len(provider.requests) == 2
		assert task.history.get("call-1").status == ToolStatus.FINISHED


class TestChildQuestions:
	@pytest.mark.asyncio
	async def test_child_question_routed_to_parent(self, project):
		parent = await project.create_task()
		child = Task(
			project,
			TaskData(project_dir=parent.project_dir, parent_id=parent.id),
			parent=parent,
			persist=False,
		)

		pending = asyncio.create_task(child.ask_question(QuestionData(text="Proceed?")))
		await wait_until(lambda: parent.current_question is not None)

		assert parent.state == TaskState.AWAITING_ANSWER
		assert child.current_question is None
		await parent.answer_question("y")
		assert await pending == ("y", None)


class TestAbortSignal:
	@pytest.mark.asyncio
	async def test_race_returns_result(self):
		signal = AbortSignal()

		async def work():
			return 42

		assert await signal.race(work()) == 42

	@pytest.mark.asyncio
	async def test_race_aborts_pending_work(self):
		signal = AbortSignal()
		started = asyncio.Event()

		async def work():
			started.set()
			await asyncio.Event().wait()

		pending = asyncio.create_task(signal.race(work()))
		await started.wait()
		signal.abort("stop")

		with pytest.raises(OperationAborted) as exc_info:
			await pending
		assert exc_info.value.reason == "stop"

	@pytest.mark.asyncio
	async def test_child_follows_parent_until_detached(self):
		parent = AbortSignal()
		child = AbortSignal(parent=parent)
		detached = AbortSignal(parent=parent)
		detached.detach()

		parent.abort("closed")

		assert child.aborted is True
		assert child.reason == "closed"
		assert detached.aborted is False

	def test_listener_added_after_abort_runs_immediately(self):
		signal = AbortSignal()
		signal.abort("done")
		reasons: list[str] = []
		signal.add_listener(reasons.append)
		assert reasons == ["done"]
