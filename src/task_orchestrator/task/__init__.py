"""Task state, history and persistence. The Task class lives in task.task."""

from .history import MessageRemovalError, TaskHistory
from .models import (
	AGENT_MODE,
	CONNECTOR_MODES,
	ContextFile,
	QuestionData,
	TaskData,
	TaskRecord,
	TaskState,
	WorkingMode,
)
from .store import PersistenceError, TaskStore

__all__ = [
	"AGENT_MODE",
	"CONNECTOR_MODES",
	"ContextFile",
	"MessageRemovalError",
	"PersistenceError",
	"QuestionData",
	"TaskData",
	"TaskHistory",
	"TaskRecord",
	"TaskState",
	"TaskStore",
	"WorkingMode",
]
