"""
Hooks module - User-supplied handlers for task lifecycle events.

Hooks are discovered from:
- Global: <config_dir>/hooks/*.py
- Project: <project>/.task-orchestrator/hooks/*.py
"""

from .context import HookContext
from .events import Block, Continue, HookEvent, HookResult, Override
from .loader import HookModule, load_hooks_from_dir
from .manager import HookManager

__all__ = [
	"Block",
	"Continue",
	"HookContext",
	"HookEvent",
	"HookManager",
	"HookModule",
	"HookResult",
	"Override",
	"load_hooks_from_dir",
]
