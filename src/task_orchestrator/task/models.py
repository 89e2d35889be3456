"""
Task Models - Pydantic schemas for task state and its persisted record.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..messages import ContextMessage, new_id

CURRENT_RECORD_VERSION = 1


class TaskState(str, Enum):
	"""Lifecycle state of a task."""
	IDLE = "idle"
	RUNNING = "running"
	AWAITING_APPROVAL = "awaiting-approval"
	AWAITING_ANSWER = "awaiting-answer"
	CLOSED = "closed"


ACTIVE_STATES = (TaskState.RUNNING, TaskState.AWAITING_APPROVAL, TaskState.AWAITING_ANSWER)


class WorkingMode(str, Enum):
	"""Where a task's files live."""
	LOCAL = "local"
	WORKTREE = "worktree"


# "agent" runs the agent loop; the others are forwarded to the connector
AGENT_MODE = "agent"
CONNECTOR_MODES = ("code", "ask", "architect", "context")


class ContextFile(BaseModel):
	path: str
	read_only: bool = False


class TaskData(BaseModel):
	"""Task metadata. History and files are kept in TaskHistory."""
	id: str = Field(default_factory=new_id)
	parent_id: Optional[str] = None
	name: str = ""
	project_dir: str
	created_at: str = Field(default_factory=lambda: datetime.now().isoformat())
	updated_at: str = Field(default_factory=lambda: datetime.now().isoformat())
	state: TaskState = TaskState.IDLE
	mode: str = AGENT_MODE
	working_mode: WorkingMode = WorkingMode.LOCAL
	worktree_path: Optional[str] = None
	worktree_branch: Optional[str] = None
	main_model: str = ""
	weak_model: Optional[str] = None
	architect_model: Optional[str] = None
	edit_format: Optional[str] = None
	agent_profile_id: Optional[str] = None
	auto_approve: bool = False
	agent_total_cost: float = 0.0
	connector_total_cost: float = 0.0
	tokens_info: dict[str, Any] = Field(default_factory=dict)
	repo_map: str = ""
	autocompletion_words: list[str] = Field(default_factory=list)


class TaskRecord(BaseModel):
	"""Durable record of one task."""
	version: int = CURRENT_RECORD_VERSION
	task: TaskData
	messages: list[ContextMessage] = Field(default_factory=list)
	files: list[ContextFile] = Field(default_factory=list)


class QuestionData(BaseModel):
	"""A question put to the user on behalf of a task."""
	id: str = Field(default_factory=new_id)
	text: str
	subject: Optional[str] = None
	key: Optional[str] = None
	default_answer: str = "y"
	answers: list[dict[str, str]] = Field(default_factory=list)
	is_group_question: bool = False
	is_approval: bool = False
	origin: str = "agent"
