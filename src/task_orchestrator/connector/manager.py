"""
Connector Manager - Routes subprocess messages to the tasks they belong to.

Responsibilities:
- Registering connectors on `init` and removing them on disconnect
- Dispatching each inbound action to a typed task call
- Event subscriptions requested over a channel
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from ..messages import ResponseMessage, UserMessage
from ..project.manager import normalize_base_dir
from ..task.models import ContextFile, QuestionData
from .connector import Channel, Connector
from .protocol import (
	AddFileEvent,
	AddMessageEvent,
	AskQuestionEvent,
	CommandOutputEvent,
	DropFileEvent,
	InitMessage,
	LogEvent,
	PromptFinishedEvent,
	ResponseEvent,
	SetModelsEvent,
	SubscribeEventsEvent,
	TokensInfoEvent,
	UnsubscribeEventsEvent,
	UpdateAutocompletionEvent,
	UpdateContextFilesEvent,
	UpdateRepoMapEvent,
	build_outbound,
	parse_message,
)

if TYPE_CHECKING:
	from ..events import EventManager
	from ..project.manager import ProjectManager
	from ..task.task import Task

logger = logging.getLogger(__name__)


class ConnectorManager:
	"""
	Connector registry and inbound dispatcher.

	Routing keys are the channel id and (base_dir, task_id); both maps are
	updated together under one lock. Messages from one channel are applied
	one at a time in arrival order.
	"""

	def __init__(self, project_manager: "ProjectManager", event_manager: "EventManager"):
		self.project_manager = project_manager
		self.event_manager = event_manager
		self._by_channel: dict[str, Connector] = {}
		self._by_task: dict[tuple[str, str], Connector] = {}
		self._lock = asyncio.Lock()
		self._channel_locks: dict[str, asyncio.Lock] = {}
		self._handlers: dict[str, Callable[[Channel, Any], Awaitable[None]]] = {
			"init": self._on_init,
			"response": self._on_response,
			"add-message": self._on_add_message,
			"ask-question": self._on_ask_question,
			"set-models": self._on_set_models,
			"update-context-files": self._on_update_context_files,
			"add-file": self._on_add_file,
			"drop-file": self._on_drop_file,
			"command-output": self._on_command_output,
			"tokens-info": self._on_tokens_info,
			"prompt-finished": self._on_prompt_finished,
			"update-repo-map": self._on_update_repo_map,
			"update-autocompletion": self._on_update_autocompletion,
			"subscribe-events": self._on_subscribe_events,
			"unsubscribe-events": self._on_unsubscribe_events,
			"log": self._on_log,
		}

	# Registry

	@property
	def connectors(self) -> list[Connector]:
		return list(self._by_channel.values())

	def get_connector(self, base_dir: str, task_id: str) -> Optional[Connector]:
		return self._by_task.get((normalize_base_dir(base_dir), task_id))

	def connector_for_channel(self, channel_id: str) -> Optional[Connector]:
		return self._by_channel.get(channel_id)

	async def _register(self, connector: Connector) -> Optional[Connector]:
		"""Register a connector; returns the one it replaced on the same channel."""
		async with self._lock:
			previous = self._by_channel.get(connector.channel.id)
			if previous is not None and previous.task_id:
				key = (previous.base_dir, previous.task_id)
				if self._by_task.get(key) is previous:
					del self._by_task[key]
			self._by_channel[connector.channel.id] = connector
			if connector.task_id:
				self._by_task[(connector.base_dir, connector.task_id)] = connector
		return previous

	async def _unregister(self, channel_id: str) -> Optional[Connector]:
		async with self._lock:
			connector = self._by_channel.pop(channel_id, None)
			if connector is not None and connector.task_id:
				key = (connector.base_dir, connector.task_id)
				if self._by_task.get(key) is connector:
					del self._by_task[key]
			self._channel_locks.pop(channel_id, None)
		return connector

	# Inbound

	async def process_message(self, channel: Channel, raw: Any) -> None:
		"""Parse and apply one inbound message. Bad messages are logged and dropped."""
		message = parse_message(raw)
		if message is None:
			return

		lock = self._channel_locks.setdefault(channel.id, asyncio.Lock())
		async with lock:
			handler = self._handlers[message.action]
			logger.debug(f"Connector message {message.action} on channel {channel.id}")
			try:
				await handler(channel, message)
			except Exception as e:
				logger.error(f"Failed to process '{message.action}' from channel {channel.id}: {e}", exc_info=True)

	async def disconnect(self, channel: Channel) -> None:
		"""Drop a channel's connector; its task keeps its state and goes idle."""
		connector = await self._unregister(channel.id)
		self.event_manager.unsubscribe_owner(channel)
		if connector is None:
			return
		self.event_manager.unsubscribe_owner(connector)
		logger.info(f"Connector disconnected: {connector!r}")
		project = self.project_manager.get_project(connector.base_dir)
		await project.remove_connector(connector)

	async def close(self) -> None:
		for connector in self.connectors:
			await connector.close()

	def _connector(self, channel: Channel) -> Optional[Connector]:
		connector = self._by_channel.get(channel.id)
		if connector is None:
			logger.warning(f"No connector registered for channel {channel.id}")
		return connector

	async def _task(self, channel: Channel) -> Optional["Task"]:
		connector = self._connector(channel)
		if connector is None or not connector.task_id:
			return None
		project = self.project_manager.get_project(connector.base_dir)
		task = await project.get_task(connector.task_id)
		if task is None or task.is_closed:
			return None
		return task

	# Handlers

	async def _on_init(self, channel: Channel, message: InitMessage) -> None:
		base_dir = normalize_base_dir(message.base_dir)
		connector = Connector(
			channel,
			base_dir,
			task_id=message.task_id,
			source=message.source,
			listen_to=message.listen_to,
			input_history_file=message.input_history_file,
		)
		previous = await self._register(connector)
		if previous is not None:
			await self.project_manager.get_project(previous.base_dir).remove_connector(previous)

		project = self.project_manager.get_project(base_dir)
		await project.add_connector(connector)
		logger.info(f"Connector initialized: {connector!r} (source={message.source}, listenTo={message.listen_to})")

		if message.context_files:
			task = await project.get_task(message.task_id)
			if task is not None and not task.is_closed:
				await task.add_files(
					[ContextFile(path=f.path, read_only=f.read_only) for f in message.context_files],
					notify_connector=False,
				)

	async def _on_response(self, channel: Channel, message: ResponseEvent) -> None:
		task = await self._task(channel)
		if task is None:
			return
		if message.finished:
			await task.process_stream_completed(
				message.message_id,
				usage=message.usage_report.to_usage() if message.usage_report else None,
				content=message.content,
				prompt_context=message.prompt_context,
				from_connector=True,
				reflected_message=message.reflected_message,
				edited_files=message.edited_files,
			)
		else:
			await task.process_stream_chunk(message.message_id, message.content, message.prompt_context)

	async def _on_add_message(self, channel: Channel, message: AddMessageEvent) -> None:
		task = await self._task(channel)
		if task is None:
			return
		if message.role == "assistant":
			usage = message.usage_report.to_usage() if message.usage_report else None
			context_message = ResponseMessage(content=message.content, completed=True, usage=usage)
		else:
			context_message = UserMessage(content=message.content, mode=task.data.mode)
		await task.add_context_message(context_message)

	async def _on_ask_question(self, channel: Channel, message: AskQuestionEvent) -> None:
		task = await self._task(channel)
		if task is None:
			logger.error("Connector has no task, cannot ask question")
			return
		question = QuestionData(
			text=message.question,
			subject=message.subject,
			default_answer=message.default_answer,
			answers=message.answers,
			is_group_question=message.is_group_question,
			origin="connector",
		)
		await task.ask_question(question, await_answer=False)

	async def _on_set_models(self, channel: Channel, message: SetModelsEvent) -> None:
		task = await self._task(channel)
		if task is None:
			return
		await task.update_models(
			main_model=message.main_model,
			weak_model=message.weak_model,
			architect_model=message.architect_model,
			edit_format=message.edit_format,
		)

	async def _on_update_context_files(self, channel: Channel, message: UpdateContextFilesEvent) -> None:
		task = await self._task(channel)
		if task is None:
			return
		await task.update_context_files([ContextFile(path=f.path, read_only=f.read_only) for f in message.files])

	async def _tasks_for_file_event(self, channel: Channel) -> list["Task"]:
		"""The connector's task, or every loaded task of the project for a task-less connector."""
		connector = self._connector(channel)
		if connector is None:
			return []
		project = self.project_manager.get_project(connector.base_dir)
		if connector.task_id:
			task = await project.get_task(connector.task_id)
			return [task] if task is not None and not task.is_closed else []
		await project.load_tasks()
		return [task for task in project.loaded_tasks() if not task.is_closed]

	async def _on_add_file(self, channel: Channel, message: AddFileEvent) -> None:
		for task in await self._tasks_for_file_event(channel):
			await task.add_files([ContextFile(path=message.path, read_only=message.read_only)], notify_connector=False)

	async def _on_drop_file(self, channel: Channel, message: DropFileEvent) -> None:
		for task in await self._tasks_for_file_event(channel):
			await task.drop_file(message.path, notify_connector=False)

	async def _on_command_output(self, channel: Channel, message: CommandOutputEvent) -> None:
		task = await self._task(channel)
		if task is None:
			return
		if message.phase == "start":
			await task.open_command_output(message.command)
		elif message.phase == "chunk":
			await task.add_command_output(message.output)
		else:
			if message.output:
				await task.add_command_output(message.output)
			await task.close_command_output()

	async def _on_tokens_info(self, channel: Channel, message: TokensInfoEvent) -> None:
		task = await self._task(channel)
		if task is not None:
			await task.update_tokens_info(message.info)

	async def _on_prompt_finished(self, channel: Channel, message: PromptFinishedEvent) -> None:
		task = await self._task(channel)
		if task is not None:
			logger.info(f"Prompt finished for task {task.id} (promptId={message.prompt_id})")
			await task.prompt_finished(message.prompt_id)

	async def _on_update_repo_map(self, channel: Channel, message: UpdateRepoMapEvent) -> None:
		task = await self._task(channel)
		if task is not None:
			await task.update_repo_map(message.repo_map)

	async def _on_update_autocompletion(self, channel: Channel, message: UpdateAutocompletionEvent) -> None:
		task = await self._task(channel)
		if task is None:
			logger.warning("update-autocompletion from a connector without a task")
			return
		await task.update_autocompletion(message.words)

	async def _on_subscribe_events(self, channel: Channel, message: SubscribeEventsEvent) -> None:
		base_dirs = [normalize_base_dir(d) for d in message.base_dirs] if message.base_dirs else None
		connector = self._by_channel.get(channel.id)
		if connector is not None:
			owner: Any = connector
			callback = connector.send_event
		else:
			owner = channel

			async def callback(event: dict[str, Any]) -> None:
				await channel.send_json(build_outbound("event", event=event))

		self.event_manager.unsubscribe_owner(owner)
		self.event_manager.subscribe(callback, event_types=message.event_types, base_dirs=base_dirs, owner=owner)
		logger.info(f"Channel {channel.id} subscribed to events (types={message.event_types}, baseDirs={base_dirs})")

	async def _on_unsubscribe_events(self, channel: Channel, message: UnsubscribeEventsEvent) -> None:
		removed = self.event_manager.unsubscribe_owner(channel)
		connector = self._by_channel.get(channel.id)
		if connector is not None:
			removed += self.event_manager.unsubscribe_owner(connector)
		logger.info(f"Channel {channel.id} unsubscribed from events ({removed} subscriptions)")

	async def _on_log(self, channel: Channel, message: LogEvent) -> None:
		task = await self._task(channel)
		if task is not None:
			await task.add_log_message(message.level, message.message, message.finished, message.prompt_context)
