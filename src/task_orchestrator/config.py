"""
Configuration for task-orchestrator.

Values come from three layers, later ones winning:
	1. Defaults (platformdirs locations for config and data)
	2. <config_dir>/config.toml
	3. TASK_ORCHESTRATOR_* environment variables
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping

import platformdirs

logger = logging.getLogger(__name__)

APP_NAME = "task-orchestrator"
ENV_PREFIX = "TASK_ORCHESTRATOR_"
CONFIG_FILE = "config.toml"

# Per-project state lives under <project>/.task-orchestrator/
PROJECT_DATA_DIR = ".task-orchestrator"


@dataclass
class Config:
	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	connector_host: str = "127.0.0.1"
	connector_port: int = 8421
	hook_reload_debounce: float = 1.0
	hook_poll_interval: float = 1.0
	history_page_size: int = 100
	instrument: bool = True
	log_level: str = "INFO"

	@property
	def global_hooks_dir(self) -> Path:
		return self.config_dir / "hooks"

	@property
	def profiles_file(self) -> Path:
		return self.config_dir / "profiles.yaml"

	@property
	def tool_calls_db_path(self) -> Path:
		return self.data_dir / "tool_calls.db"

	@property
	def log_dir(self) -> Path:
		return self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		for directory in (self.config_dir, self.data_dir, self.log_dir):
			directory.mkdir(parents=True, exist_ok=True)

	def project_data_dir(self, project_dir: str | Path) -> Path:
		"""Directory holding orchestrator state inside a project."""
		return Path(project_dir) / PROJECT_DATA_DIR

	def tasks_dir(self, project_dir: str | Path) -> Path:
		return self.project_data_dir(project_dir) / "tasks"

	def project_hooks_dir(self, project_dir: str | Path) -> Path:
		return self.project_data_dir(project_dir) / "hooks"

	def worktrees_dir(self, project_dir: str | Path) -> Path:
		return self.project_data_dir(project_dir) / "worktrees"


def _path(value: Any) -> Path:
	return Path(os.path.expanduser(str(value)))


def _flag(value: Any) -> bool:
	if isinstance(value, bool):
		return value
	return str(value).strip().lower() not in {"0", "false", "no", "off", ""}


_PARSERS: dict[str, Callable[[Any], Any]] = {
	"config_dir": _path,
	"data_dir": _path,
	"connector_host": str,
	"connector_port": int,
	"hook_reload_debounce": float,
	"hook_poll_interval": float,
	"history_page_size": int,
	"instrument": _flag,
	"log_level": lambda value: str(value).upper(),
}

# Environment names that differ from TASK_ORCHESTRATOR_<FIELD>
_ENV_ALIASES = {"HOOK_DEBOUNCE": "hook_reload_debounce"}


def _parse(name: str, value: Any) -> Any:
	try:
		return _PARSERS[name](value)
	except (TypeError, ValueError) as e:
		raise ValueError(f"Invalid value for {name}: {value!r}") from e


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
	"""Typed config values taken from TASK_ORCHESTRATOR_* variables."""
	names = {f.name.upper(): f.name for f in fields(Config)}
	names.update(_ENV_ALIASES)

	overrides = {}
	for suffix, name in names.items():
		raw = environ.get(ENV_PREFIX + suffix)
		if raw:
			overrides[name] = _parse(name, raw)
	return overrides


def file_overrides(path: Path) -> dict[str, Any]:
	"""Typed config values from a TOML file. Unknown keys are ignored."""
	if not path.exists():
		return {}

	with open(path, "rb") as f:
		data = tomllib.load(f)

	overrides = {}
	for key, value in data.items():
		if key not in _PARSERS:
			logger.warning(f"Ignoring unknown config key {key!r} in {path}")
			continue
		overrides[key] = _parse(key, value)
	return overrides


def load_config(environ: Mapping[str, str] | None = None) -> Config:
	"""Build the config from defaults, config.toml and the environment."""
	environ = os.environ if environ is None else environ
	env = env_overrides(environ)

	config = Config()
	config_dir = env.get("config_dir", config.config_dir)
	config = replace(config, **{**file_overrides(config_dir / CONFIG_FILE), **env})
	config.ensure_dirs()
	return config


_config: Config | None = None


def get_config() -> Config:
	"""Process-wide config, loaded on first use."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
