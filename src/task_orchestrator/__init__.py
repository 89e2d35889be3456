"""task-orchestrator - Task orchestration core for AI coding assistants."""

__version__ = "0.1.0"
