"""
Task - One unit of AI-assisted work and the only writer of its history.

A task runs at most one step at a time. A step is an asyncio.Task that
either drives the agent loop or forwards the prompt to the connector and
waits for it to report completion. Everything that can suspend a step
(approval, question, connector prompt) is a future resolved by an inbound
event or by the step's abort signal.

State transitions:
	idle -> running -> (awaiting-approval | awaiting-answer -> running)* -> idle
	any -> closed
"""

import asyncio
import json
import logging
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from ..agent.signal import AbortSignal, OperationAborted
from ..hooks.events import HookEvent
from ..instrumentation import ToolCallRecord, ToolOutcome, preview
from ..messages import (
	LogMessage,
	PromptContext,
	ResponseMessage,
	ToolMessage,
	ToolStatus,
	UsageReport,
	UserMessage,
	new_id,
)
from .history import TaskHistory
from .models import (
	ACTIVE_STATES,
	AGENT_MODE,
	ContextFile,
	QuestionData,
	TaskData,
	TaskRecord,
	TaskState,
	WorkingMode,
)
from .store import PersistenceError

if TYPE_CHECKING:
	from ..agent.profile import AgentProfile
	from ..agent.tools import Tool, ToolCall
	from ..approval import ApprovalGate
	from ..project.project import Project

logger = logging.getLogger(__name__)

TOOL_DENIED_RESULT = "Tool execution cancelled by user."
TOOL_ABORTED_RESULT = "Operation was cancelled by user."
TOOL_BLOCKED_RESULT = "Tool execution blocked by hook."


class TaskError(Exception):
	"""Base class for task operation errors."""
	pass


class TaskBusyError(TaskError):
	"""Raised when a prompt is submitted while a step is active."""
	pass


class TaskClosedError(TaskError):
	"""Raised when operating on a closed task."""
	pass


def denial_result(user_input: Optional[str]) -> str:
	if user_input:
		return f"{TOOL_DENIED_RESULT} User input: {user_input}"
	return TOOL_DENIED_RESULT


class Task:
	"""
	Orchestrates one task: history, steps, suspensions and the connector.

	Usage:
		task = await project.create_task(name="Refactor parser")
		step = await task.submit_prompt("Split the tokenizer out")
		await step
	"""

	def __init__(
		self,
		project: "Project",
		data: TaskData,
		history: Optional[TaskHistory] = None,
		parent: Optional["Task"] = None,
		persist: bool = True,
	):
		self.project = project
		self.data = data
		self.history = history or TaskHistory(data.id)
		self.parent = parent
		self.persist = persist

		self._step: Optional[asyncio.Task] = None
		self._signal: Optional[AbortSignal] = None
		self._question: Optional[QuestionData] = None
		self._question_future: Optional[asyncio.Future] = None
		self._state_before_question: Optional[TaskState] = None
		self._prompt_waiters: dict[str, asyncio.Future] = {}
		# Tool keys answered "a" (always) during this task's life
		self.always_approved: set[str] = set()
		self._children: set["Task"] = set()
		self._command_output: Optional[LogMessage] = None
		self._command: Optional[str] = None

	@classmethod
	def from_record(cls, project: "Project", record: TaskRecord) -> "Task":
		"""Rebuild a task from disk. A step cannot survive a restart, so it starts idle."""
		data = record.task.model_copy(update={"state": TaskState.IDLE})
		history = TaskHistory(data.id, messages=record.messages, files=record.files)
		return cls(project, data, history)

	# Properties

	@property
	def id(self) -> str:
		return self.data.id

	@property
	def project_dir(self) -> str:
		return self.data.project_dir

	@property
	def task_dir(self) -> str:
		"""Directory the task works in: its worktree when it has one."""
		if self.data.working_mode == WorkingMode.WORKTREE and self.data.worktree_path:
			return self.data.worktree_path
		return self.data.project_dir

	@property
	def state(self) -> TaskState:
		return self.data.state

	@property
	def hook_manager(self):
		return self.project.hook_manager

	@property
	def is_busy(self) -> bool:
		if self._step is not None and not self._step.done():
			return True
		return self.data.state in ACTIVE_STATES

	@property
	def is_closed(self) -> bool:
		return self.data.state == TaskState.CLOSED

	@property
	def current_question(self) -> Optional[QuestionData]:
		return self._question

	@property
	def step(self) -> Optional[asyncio.Task]:
		return self._step

	def _check_open(self) -> None:
		if self.is_closed:
			raise TaskClosedError(f"Task {self.id} is closed")

	# Persistence and events

	def to_record(self) -> TaskRecord:
		return TaskRecord(task=self.data, messages=self.history.messages, files=self.history.files)

	async def save(self) -> None:
		"""
		Write the task record.

		Raises:
			PersistenceError: If the write fails; in-memory state is kept
		"""
		if not self.persist:
			return
		self.data.updated_at = datetime.now().isoformat()
		await self.project.store.save(self.to_record())

	async def _emit(self, event_type: str, payload: Optional[dict[str, Any]] = None) -> None:
		data = {"taskId": self.id}
		if self.data.parent_id:
			data["parentId"] = self.data.parent_id
		data.update(payload or {})
		await self.project.event_manager.emit(event_type, self.project_dir, data)

	async def _set_state(self, state: TaskState) -> None:
		if self.data.state == state:
			return
		previous = self.data.state
		self.data.state = state
		logger.debug(f"Task {self.id}: {previous.value} -> {state.value}")
		await self._emit("state-changed", {"state": state.value, "previous": previous.value})

	async def _append(self, message, event_type: str) -> bool:
		if not self.history.append(message):
			return False
		await self._emit(event_type, {"message": message.model_dump(mode="json")})
		await self.save()
		return True

	def _connector(self, action: Optional[str] = None):
		return self.project.get_connector(self.id, action)

	# Prompts and steps

	async def submit_prompt(self, text: str, mode: Optional[str] = None) -> Optional[asyncio.Task]:
		"""
		Start a step for a user prompt.

		Args:
			text: Prompt text
			mode: "agent" or a connector mode; defaults to the task's mode

		Returns:
			The running step, or None if a hook blocked the prompt

		Raises:
			TaskBusyError: If a step is already active. History is untouched.
			TaskClosedError: If the task is closed
		"""
		self._check_open()
		if self.is_busy:
			raise TaskBusyError(f"Task {self.id} is busy ({self.data.state.value})")

		mode = mode or self.data.mode
		# Claim the task before the first await so a concurrent submit sees it busy
		previous = self.data.state
		self.data.state = TaskState.RUNNING

		try:
			hook_result = await self.hook_manager.trigger(
				HookEvent.PROMPT_SUBMITTED,
				{"prompt": text, "mode": mode},
				self,
			)
			if hook_result.blocked:
				self.data.state = previous
				logger.info(f"Prompt for task {self.id} blocked by hook")
				await self.add_log_message("info", "Prompt blocked by hook.")
				return None

			prompt = str(hook_result.event.get("prompt", text))
			mode = str(hook_result.event.get("mode", mode))
			prompt_context = PromptContext()
			await self._emit("state-changed", {"state": TaskState.RUNNING.value, "previous": previous.value})
			await self._append(
				UserMessage(content=prompt, mode=mode, prompt_context=prompt_context),
				"user-message",
			)
		except BaseException:
			self.data.state = previous
			raise

		self._signal = AbortSignal()
		self._step = asyncio.create_task(
			self._run_step(prompt, mode, self._signal, prompt_context),
			name=f"task-step-{self.id}",
		)
		return self._step

	async def _run_step(self, prompt: str, mode: str, signal: AbortSignal, prompt_context: PromptContext) -> None:
		try:
			await self.hook_manager.trigger(HookEvent.PROMPT_STARTED, {"prompt": prompt, "mode": mode}, self)
			if mode == AGENT_MODE:
				profile = self.project.profiles.get(self.data.agent_profile_id)
				await self.run_agent(prompt, profile, signal, prompt_context=prompt_context)
			else:
				await self._run_connector_prompt(prompt, mode, signal)
			await self.hook_manager.trigger(HookEvent.PROMPT_FINISHED, {"prompt": prompt, "mode": mode}, self)
		except OperationAborted as e:
			logger.info(f"Step for task {self.id} aborted: {e.reason}")
		except asyncio.CancelledError:
			logger.info(f"Step for task {self.id} cancelled")
			raise
		except PersistenceError:
			raise
		except Exception as e:
			logger.error(f"Step for task {self.id} failed: {e}", exc_info=True)
			await self.add_log_message("error", f"Prompt failed: {e}")
		finally:
			self.history.finalize_open_stream()
			self._signal = None
			if not self.is_closed:
				await self._set_state(TaskState.IDLE)
				await self.save()

	async def run_agent(
		self,
		prompt: str,
		profile: "AgentProfile",
		signal: AbortSignal,
		system_prompt: Optional[str] = None,
		prompt_context: Optional[PromptContext] = None,
	) -> None:
		"""Run the agent loop on this task's history."""
		if self.data.state != TaskState.RUNNING:
			await self._set_state(TaskState.RUNNING)
		await self.project.runner.run(
			self,
			profile,
			prompt,
			signal,
			system_prompt=system_prompt,
			prompt_context=prompt_context,
		)

	async def _run_connector_prompt(self, prompt: str, mode: str, signal: AbortSignal) -> None:
		connector = self._connector("prompt")
		if connector is None:
			await self.add_log_message("warning", f"No connector accepting prompts is attached to task {self.id}, prompt not sent.")
			return

		prompt_id = new_id()
		future: asyncio.Future = asyncio.get_running_loop().create_future()
		self._prompt_waiters[prompt_id] = future
		try:
			sent = await connector.send_prompt(
				prompt_id,
				prompt,
				mode,
				architect_model=self.data.architect_model,
			)
			if not sent:
				await self.add_log_message("warning", f"Prompt could not be delivered to {connector!r}.")
				return
			await signal.race(future)
		finally:
			self._prompt_waiters.pop(prompt_id, None)

	async def prompt_finished(self, prompt_id: Optional[str] = None) -> None:
		"""Connector reported a prompt done; resume the waiting step."""
		if prompt_id is None:
			waiters = list(self._prompt_waiters.values())
		else:
			waiters = [self._prompt_waiters[prompt_id]] if prompt_id in self._prompt_waiters else []
		for future in waiters:
			if not future.done():
				future.set_result(None)
		self.history.finalize_open_stream()

	def _release_prompt_waiters(self) -> None:
		for future in self._prompt_waiters.values():
			if not future.done():
				future.set_result(None)

	async def wait_idle(self) -> None:
		"""Wait for the current step, if any, to end."""
		step = self._step
		if step is not None and not step.done():
			await asyncio.wait({step})

	# Streaming

	async def process_stream_chunk(
		self,
		message_id: str,
		chunk: str,
		prompt_context: Optional[PromptContext] = None,
	) -> Optional[ResponseMessage]:
		"""Apply one streamed chunk; see TaskHistory.apply_chunk."""
		opened = message_id not in self.history
		message = self.history.apply_chunk(message_id, chunk, prompt_context)
		if message is None:
			return None
		await self._emit("response-chunk", {"messageId": message_id, "chunk": chunk})
		if opened:
			await self.save()
		return message

	async def process_stream_completed(
		self,
		message_id: str,
		usage: Optional[UsageReport] = None,
		content: Optional[str] = None,
		prompt_context: Optional[PromptContext] = None,
		from_connector: bool = False,
		reflected_message: Optional[str] = None,
		edited_files: Optional[list[str]] = None,
	) -> Optional[ResponseMessage]:
		"""
		Complete a streamed response.

		Duplicate completions and completions with nothing to keep are
		ignored and return None.
		"""
		message = self.history.apply_completed(message_id, usage, content, prompt_context)
		if message is None:
			return None

		if reflected_message:
			message.reflected_message = reflected_message
		if edited_files:
			message.edited_files = list(edited_files)
		if usage is not None:
			if from_connector:
				self.data.connector_total_cost += usage.message_cost
			else:
				self.data.agent_total_cost += usage.message_cost

		await self.hook_manager.trigger(
			HookEvent.RESPONSE_MESSAGE_PROCESSED,
			{"message": message.model_dump(mode="json")},
			self,
		)
		await self._emit("response-completed", {"message": message.model_dump(mode="json")})
		await self.save()
		return message

	# Tools

	async def invoke_tool(
		self,
		call: "ToolCall",
		tool: Optional["Tool"],
		gate: Optional["ApprovalGate"],
		signal: AbortSignal,
		prompt_context: Optional[PromptContext] = None,
	) -> Any:
		"""
		Run one tool call through hooks, approval and execution.

		The tool message is recorded as pending before anything else so the
		UI sees the call even if it is later blocked or denied.

		Returns:
			The tool result; failures, denials and aborts are result strings
		"""
		from ..agent.tools import ToolContext

		message = ToolMessage(
			id=call.id,
			group=call.group,
			name=call.tool_name,
			args=dict(call.args),
			prompt_context=prompt_context,
		)
		if not self.history.append(message):
			message.id = new_id()
			logger.warning(f"Task {self.id}: tool call id {call.id} already in history, recording it as {message.id}")
			self.history.append(message)
		await self._emit("tool", {"message": message.model_dump(mode="json")})
		await self.save()

		start = time.monotonic()
		outcome = ToolOutcome.ERROR
		result: Any

		hook_result = await self.hook_manager.trigger(
			HookEvent.TOOL_CALLED,
			{"toolName": message.key, "args": dict(call.args)},
			self,
		)
		if hook_result.blocked:
			result = TOOL_BLOCKED_RESULT
			outcome = ToolOutcome.BLOCKED
		elif tool is None:
			result = f"Tool {message.key} not found."
		else:
			args = dict(hook_result.event.get("args", call.args))
			approved, user_input = True, None
			if gate is not None and tool.requires_approval:
				text, subject = tool.approval_question(args)
				approved, user_input = await gate.handle_approval(message.key, text, subject, signal=signal)

			if signal.aborted:
				result = TOOL_ABORTED_RESULT
				outcome = ToolOutcome.ABORTED
			elif not approved:
				result = denial_result(user_input)
				outcome = ToolOutcome.DENIED
			else:
				message.status = ToolStatus.EXECUTING
				message.args = args
				await self._emit("tool", {"message": message.model_dump(mode="json")})
				context = ToolContext(
					task=self,
					signal=signal,
					tool_call_id=message.id,
					prompt_context=prompt_context,
				)
				try:
					result = await signal.race(tool.run(args, context))
					outcome = ToolOutcome.SUCCESS
				except OperationAborted:
					result = TOOL_ABORTED_RESULT
					outcome = ToolOutcome.ABORTED
				except Exception as e:
					logger.warning(f"Tool {message.key} failed for task {self.id}: {e}")
					result = f"Error executing tool {message.key}: {e}"

		message.status = ToolStatus.FINISHED
		message.result = result
		self._record_tool_call(message, result, time.monotonic() - start, outcome)
		await self._emit("tool", {"message": message.model_dump(mode="json")})
		await self.save()

		await self.hook_manager.trigger(
			HookEvent.TOOL_FINISHED,
			{"toolName": message.key, "args": message.args, "result": result},
			self,
		)
		return result

	def _record_tool_call(self, message: ToolMessage, result: Any, duration: float, outcome: ToolOutcome) -> None:
		store = self.project.tool_call_store
		if store is None:
			return
		try:
			store.record(ToolCallRecord(
				task_id=self.id,
				tool=message.key,
				outcome=outcome,
				duration=round(duration, 4),
				args_preview=preview(json.dumps(message.args, default=str)),
				result_preview=preview(result),
			))
		except sqlite3.Error as e:
			logger.debug(f"Failed to record tool call for {message.key}: {e}")

	async def update_tool_message(self, tool_call_id: str, prompt_context: PromptContext) -> None:
		"""Attach a prompt context to an existing tool message."""
		message = self.history.get(tool_call_id)
		if isinstance(message, ToolMessage):
			message.prompt_context = prompt_context
			await self._emit("tool", {"message": message.model_dump(mode="json")})

	# Questions

	async def ask_question(
		self,
		question: QuestionData,
		signal: Optional[AbortSignal] = None,
		await_answer: bool = True,
	) -> tuple[str, Optional[str]]:
		"""
		Put a question to the user and wait for the answer.

		Subagent tasks route questions to their parent. An abort of `signal`
		answers "n". With `await_answer=False` the question is only
		registered (connector questions are answered back over the channel).

		Returns:
			Tuple of (answer, user_input)
		"""
		if self.parent is not None:
			return await self.parent.ask_question(question, signal=signal, await_answer=await_answer)

		hook_result = await self.hook_manager.trigger(
			HookEvent.QUESTION_ASKED,
			{"question": question.model_dump(mode="json")},
			self,
		)
		if hook_result.result is not None:
			answer = "n" if hook_result.result is False else str(hook_result.result)
			logger.info(f"Question {question.id} answered by hook: {answer}")
			if question.origin == "connector":
				connector = self._connector()
				if connector is not None:
					await connector.send_answer_question(answer, None)
			return answer, None

		if signal is not None and signal.aborted:
			return "n", None

		future: asyncio.Future = asyncio.get_running_loop().create_future()
		self._question = question
		self._question_future = future
		self._state_before_question = self.data.state
		await self._set_state(TaskState.AWAITING_APPROVAL if question.is_approval else TaskState.AWAITING_ANSWER)
		await self._emit("question-asked", {"question": question.model_dump(mode="json")})

		if not await_answer:
			return "", None

		def on_abort(reason: str) -> None:
			if not future.done():
				future.set_result(("n", None))

		if signal is not None:
			signal.add_listener(on_abort)
		try:
			answer, user_input = await future
		finally:
			if signal is not None:
				signal.remove_listener(on_abort)
			await self._clear_question()

		return answer, user_input

	async def _clear_question(self) -> None:
		self._question = None
		self._question_future = None
		previous = self._state_before_question
		self._state_before_question = None
		if self.is_closed:
			return
		if self._step is not None and not self._step.done():
			await self._set_state(TaskState.RUNNING)
		elif previous in (TaskState.IDLE, TaskState.RUNNING):
			await self._set_state(previous)
		else:
			await self._set_state(TaskState.IDLE)

	async def answer_question(self, answer: str, user_input: Optional[str] = None) -> bool:
		"""
		Answer the pending question.

		Returns:
			False if no question is pending
		"""
		question = self._question
		if question is None:
			logger.warning(f"Task {self.id}: answer received with no pending question")
			return False

		await self.hook_manager.trigger(
			HookEvent.QUESTION_ANSWERED,
			{"question": question.model_dump(mode="json"), "answer": answer, "userInput": user_input},
			self,
		)
		await self._emit("question-answered", {"questionId": question.id, "answer": answer})

		if question.origin == "connector":
			connector = self._connector()
			if connector is not None:
				await connector.send_answer_question(answer, user_input)
			await self._clear_question()
			return True

		future = self._question_future
		if future is not None and not future.done():
			future.set_result((answer, user_input))
		return True

	# Control

	async def interrupt(self) -> None:
		"""Abort the running step, keeping whatever was streamed so far."""
		if self._signal is not None:
			self._signal.abort("interrupted")
		self.history.finalize_open_stream()
		connector = self._connector()
		if connector is not None:
			await connector.send_interrupt()
		self._release_prompt_waiters()
		logger.info(f"Task {self.id} interrupted")

	def add_child(self, child: "Task") -> None:
		self._children.add(child)

	def remove_child(self, child: "Task") -> None:
		self._children.discard(child)

	async def close(self) -> None:
		"""Stop all work, flush state and mark the task closed."""
		if self.is_closed:
			return

		if self._signal is not None:
			self._signal.abort("closed")
		if self._question_future is not None and not self._question_future.done():
			self._question_future.set_result(("n", None))
		self._release_prompt_waiters()

		step = self._step
		if step is not None and not step.done():
			step.cancel()
			try:
				await step
			except asyncio.CancelledError:
				logger.debug(f"Step for task {self.id} cancelled on close")

		self.history.finalize_open_stream()

		for child in list(self._children):
			await child.close()
		self._children.clear()
		if self.parent is None:
			for subtask in self.project.get_subtasks(self.id):
				await subtask.close()

		self.data.state = TaskState.IDLE
		await self.save()
		self.project.release_connectors(self.id)
		await self.hook_manager.trigger(HookEvent.TASK_CLOSED, {}, self)
		await self._set_state(TaskState.CLOSED)
		logger.info(f"Task {self.id} closed")

	async def connector_removed(self) -> None:
		"""The connector went away: finalize the stream, release waiters, go idle."""
		self.history.finalize_open_stream()
		self._release_prompt_waiters()
		if self._question is not None and self._question.origin == "connector":
			await self._clear_question()
		if not self.is_closed and not (self._step is not None and not self._step.done()):
			await self._set_state(TaskState.IDLE)
		await self.save()

	# Messages

	async def get_history(self, offset: int = 0, limit: Optional[int] = None) -> list:
		return self.history.page(offset, limit)

	async def add_context_message(self, message) -> bool:
		self._check_open()
		return await self._append(message, "add-message")

	async def add_user_message(
		self,
		content: str,
		mode: Optional[str] = None,
		prompt_context: Optional[PromptContext] = None,
	) -> UserMessage:
		message = UserMessage(content=content, mode=mode or self.data.mode, prompt_context=prompt_context)
		await self._append(message, "user-message")
		return message

	async def add_log_message(
		self,
		level: str,
		message: str,
		finished: bool = True,
		prompt_context: Optional[PromptContext] = None,
	) -> LogMessage:
		log = LogMessage(level=level, message=message, finished=finished, prompt_context=prompt_context)
		await self._append(log, "log")
		return log

	async def remove_messages(self, ids: list[str]) -> list[str]:
		"""
		Remove messages by id.

		Raises:
			MessageRemovalError: If an id is the open streamed response
			TaskClosedError: If the task is closed
		"""
		self._check_open()
		removed = self.history.remove(ids)
		if removed:
			await self._emit("messages-removed", {"ids": removed})
			await self.save()
		return removed

	async def clear_context(self) -> None:
		"""Drop the whole conversation, keeping context files."""
		self._check_open()
		if self.is_busy:
			raise TaskBusyError(f"Task {self.id} is busy ({self.data.state.value})")
		ids = [m.id for m in self.history.messages]
		self.history.clear()
		connector = self._connector()
		if connector is not None:
			await connector.send_clear_task()
		await self._emit("messages-removed", {"ids": ids})
		await self.save()

	# Command output

	async def open_command_output(self, command: str) -> LogMessage:
		if self._command_output is not None:
			await self.close_command_output()
		self._command = command
		self._command_output = await self.add_log_message("info", f"$ {command}\n", finished=False)
		return self._command_output

	async def add_command_output(self, output: str) -> None:
		if self._command_output is None:
			await self.open_command_output("")
		self._command_output.message += output
		await self._emit("log", {"message": self._command_output.model_dump(mode="json")})

	async def close_command_output(self) -> None:
		log = self._command_output
		if log is None:
			return
		command = self._command or ""
		self._command_output = None
		self._command = None
		log.finished = True
		await self._emit("log", {"message": log.model_dump(mode="json")})
		await self.save()
		output = log.message.split("\n", 1)[1] if "\n" in log.message else ""
		await self.hook_manager.trigger(
			HookEvent.COMMAND_EXECUTED,
			{"command": command, "output": output},
			self,
		)

	# Context files

	async def add_files(
		self,
		files: Iterable[Union[ContextFile, tuple[str, bool]]],
		notify_connector: bool = True,
	) -> list[ContextFile]:
		"""
		Add context files. Each addition runs the on_file_added hook, which
		may rewrite the file or block it.

		Returns:
			The files that were actually added
		"""
		self._check_open()
		added: list[ContextFile] = []
		connector = self._connector() if notify_connector else None
		for entry in files:
			file = entry if isinstance(entry, ContextFile) else ContextFile(path=entry[0], read_only=entry[1])
			hook_result = await self.hook_manager.trigger(
				HookEvent.FILE_ADDED,
				{"file": file.model_dump(mode="json")},
				self,
			)
			if hook_result.blocked:
				continue
			file = ContextFile.model_validate(hook_result.event.get("file", file.model_dump()))
			if not self.history.add_file(file, self.task_dir):
				continue
			added.append(file)
			if connector is not None:
				await connector.send_add_file(self._absolute(file.path), file.read_only)

		if added:
			await self._emit_files()
			await self.save()
		return added

	async def drop_file(self, path: str, notify_connector: bool = True) -> bool:
		self._check_open()
		hook_result = await self.hook_manager.trigger(HookEvent.FILE_DROPPED, {"path": path}, self)
		if hook_result.blocked:
			return False
		path = str(hook_result.event.get("path", path))
		if not self.history.drop_file(path, self.task_dir):
			return False
		if notify_connector:
			connector = self._connector()
			if connector is not None:
				await connector.send_drop_file(self._absolute(path))
		await self._emit_files()
		await self.save()
		return True

	async def update_context_files(self, files: list[ContextFile]) -> None:
		"""Replace the file list with the connector's view of it."""
		normalized = [
			f.model_copy(update={"path": self._relative(f.path)})
			for f in files
		]
		self.history.set_files(normalized)
		await self._emit_files()
		await self.save()

	async def _emit_files(self) -> None:
		await self._emit("context-files-updated", {
			"files": [f.model_dump(mode="json") for f in self.history.files],
		})

	def _absolute(self, path: str) -> str:
		return str((Path(self.task_dir) / path).resolve())

	def _relative(self, path: str) -> str:
		candidate = Path(path)
		if not candidate.is_absolute():
			return path
		try:
			return str(candidate.resolve().relative_to(Path(self.task_dir).resolve()))
		except ValueError:
			return path

	# Task data

	async def update_models(
		self,
		main_model: Optional[str] = None,
		weak_model: Optional[str] = None,
		architect_model: Optional[str] = None,
		edit_format: Optional[str] = None,
	) -> None:
		updates = {
			"main_model": main_model,
			"weak_model": weak_model,
			"architect_model": architect_model,
			"edit_format": edit_format,
		}
		for field_name, value in updates.items():
			if value is not None:
				setattr(self.data, field_name, value)
		await self._emit("models-updated", {
			"mainModel": self.data.main_model,
			"weakModel": self.data.weak_model,
			"architectModel": self.data.architect_model,
			"editFormat": self.data.edit_format,
		})
		await self.save()

	async def update_tokens_info(self, tokens_info: dict[str, Any]) -> None:
		self.data.tokens_info = dict(tokens_info)
		await self._emit("tokens-info-updated", {"tokensInfo": self.data.tokens_info})

	async def update_repo_map(self, repo_map: str) -> None:
		self.data.repo_map = repo_map
		await self._emit("task-updated", {"repoMap": len(repo_map)})

	async def update_autocompletion(self, words: list[str]) -> None:
		self.data.autocompletion_words = list(words)

	async def update(self, **changes: Any) -> None:
		"""Update plain task fields (name, mode, auto_approve, agent_profile_id)."""
		allowed = {"name", "mode", "auto_approve", "agent_profile_id"}
		for key, value in changes.items():
			if key not in allowed:
				raise TaskError(f"Field {key} cannot be updated")
			setattr(self.data, key, value)
		await self._emit("task-updated", {"task": self.data.model_dump(mode="json")})
		await self.save()

	async def set_working_mode(self, mode: WorkingMode) -> None:
		"""
		Switch between working in the project directory and in a git worktree.

		Raises:
			TaskBusyError: If a step is active
			WorktreeError: If the worktree cannot be created
		"""
		from ..worktrees import create_task_worktree, remove_task_worktree

		self._check_open()
		if self.is_busy:
			raise TaskBusyError(f"Task {self.id} is busy ({self.data.state.value})")
		mode = WorkingMode(mode)
		if mode == self.data.working_mode:
			return

		if mode == WorkingMode.WORKTREE:
			worktree_path, branch = await create_task_worktree(
				Path(self.project_dir),
				self.project.config.worktrees_dir(self.project_dir),
				self.id,
			)
			self.data.worktree_path = str(worktree_path)
			self.data.worktree_branch = branch
		else:
			if self.data.worktree_path:
				await remove_task_worktree(Path(self.project_dir), Path(self.data.worktree_path))
			self.data.worktree_path = None

		self.data.working_mode = mode
		await self.add_log_message("info", f"Working mode set to {mode.value}.")
		await self._emit("task-updated", {"task": self.data.model_dump(mode="json")})
		await self.save()
