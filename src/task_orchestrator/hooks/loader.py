"""
Hook Loader - Discovers and imports hook files.

Hooks are discovered from:
- Global: <config_dir>/hooks/
- Project: <project>/.task-orchestrator/hooks/

A hook file is a Python module; every module-level callable named after a
HookEvent (e.g. `on_tool_called`) is registered as a handler.
"""

import hashlib
import importlib.util
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any

from .events import HOOK_FUNCTION_NAMES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookModule:
	"""Handlers loaded from one hook file."""
	name: str
	path: str
	scope: str
	handlers: dict[str, Callable[..., Any]] = field(default_factory=dict)

	def get(self, event_name: str) -> Callable[..., Any] | None:
		return self.handlers.get(event_name)


def _module_name(scope: str, path: Path) -> str:
	digest = hashlib.sha1(str(path).encode()).hexdigest()[:10]
	return f"task_orchestrator_hooks.{scope}.{path.stem}_{digest}"


def load_hook_file(path: Path, scope: str) -> HookModule:
	"""
	Import one hook file from scratch.

	Raises whatever the module raises on import; callers isolate per file.
	"""
	spec = importlib.util.spec_from_file_location(_module_name(scope, path), path)
	if spec is None or spec.loader is None:
		raise ImportError(f"Cannot load hook file: {path}")

	module: ModuleType = importlib.util.module_from_spec(spec)
	spec.loader.exec_module(module)

	handlers = {
		name: getattr(module, name)
		for name in HOOK_FUNCTION_NAMES
		if callable(getattr(module, name, None))
	}
	return HookModule(name=path.stem, path=str(path), scope=scope, handlers=handlers)


def load_hooks_from_dir(directory: Path, scope: str) -> tuple[HookModule, ...]:
	"""
	Load every hook file in a directory, in file name order.

	Args:
		directory: Directory to scan (missing directories yield nothing)
		scope: "global" or "project"

	Returns:
		Tuple of loaded modules; broken files are logged and skipped
	"""
	if not directory.is_dir():
		return ()

	modules: list[HookModule] = []
	for path in sorted(directory.glob("*.py")):
		if path.name.startswith("_"):
			continue
		try:
			module = load_hook_file(path, scope)
		except Exception as e:
			logger.error(f"Failed to load hook file {path}: {e}")
			continue
		modules.append(module)
		logger.info(f"Loaded hook file: {path} ({len(module.handlers)} handlers)")

	return tuple(modules)
