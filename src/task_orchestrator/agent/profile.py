"""
Agent Profiles - Pydantic schemas for agent and subagent configuration.

Profiles are loaded from profiles.yaml:

	profiles:
	  - id: default
	    name: Default
	    model: anthropic/claude-sonnet
	    tool_approvals:
	      power/bash: ask
	  - id: reviewer
	    name: Reviewer
	    subagent:
	      enabled: true
	      description: Reviews code changes
	      context_memory: full-context
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..approval import ApprovalState

logger = logging.getLogger(__name__)


class ContextMemoryMode(str, Enum):
	"""How much prior delegation history a subagent sees."""
	OFF = "off"
	LAST_MESSAGE = "last-message"
	FULL_CONTEXT = "full-context"


class InvocationMode(str, Enum):
	AUTOMATIC = "automatic"
	ON_DEMAND = "on-demand"


class SubagentConfig(BaseModel):
	enabled: bool = False
	description: str = ""
	system_prompt: str = ""
	color: str = "#3368a8"
	context_memory: ContextMemoryMode = ContextMemoryMode.OFF
	invocation_mode: InvocationMode = InvocationMode.ON_DEMAND


class AgentProfile(BaseModel):
	"""Agent configuration: model, iteration budget, tools and approvals."""
	id: str
	name: str
	provider: str = ""
	model: str = ""
	system_prompt: str = ""
	max_iterations: int = Field(default=20, ge=1)
	tool_approvals: dict[str, ApprovalState] = Field(default_factory=dict)
	use_subagents: bool = True
	use_todo_tools: bool = True
	use_memory_tools: bool = False
	is_subagent: bool = False
	subagent: SubagentConfig = Field(default_factory=SubagentConfig)

	@property
	def subagent_id(self) -> str:
		return re.sub(r"\s+", "-", self.name.lower())


DEFAULT_AGENT_PROFILE = AgentProfile(id="default", name="Default")


def is_subagent_enabled(profile: AgentProfile, main_profile_id: str) -> bool:
	return profile.subagent.enabled and profile.id != main_profile_id


class ProfileRegistry:
	"""In-memory collection of agent profiles."""

	def __init__(self, profiles: Optional[list[AgentProfile]] = None):
		self._profiles: dict[str, AgentProfile] = {}
		for profile in profiles or [DEFAULT_AGENT_PROFILE]:
			self._profiles[profile.id] = profile

	def get(self, profile_id: Optional[str]) -> AgentProfile:
		"""Get a profile by id, falling back to the first registered one."""
		if profile_id and profile_id in self._profiles:
			return self._profiles[profile_id]
		return next(iter(self._profiles.values()), DEFAULT_AGENT_PROFILE)

	def list_profiles(self) -> list[AgentProfile]:
		return list(self._profiles.values())

	def subagents_for(self, main_profile: AgentProfile) -> list[AgentProfile]:
		return [p for p in self._profiles.values() if is_subagent_enabled(p, main_profile.id)]


def load_profiles(path: Path) -> ProfileRegistry:
	"""
	Load profiles from a YAML file.

	Invalid entries are logged and skipped; a missing file yields the
	default profile only.
	"""
	if not path.exists():
		return ProfileRegistry()

	try:
		data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
	except yaml.YAMLError as e:
		logger.error(f"Failed to parse profiles file {path}: {e}")
		return ProfileRegistry()

	profiles: list[AgentProfile] = []
	for entry in data.get("profiles", []):
		try:
			profiles.append(AgentProfile.model_validate(entry))
		except ValidationError as e:
			logger.error(f"Invalid agent profile in {path}: {e}")

	logger.info(f"Loaded {len(profiles)} agent profiles from {path}")
	return ProfileRegistry(profiles or None)
