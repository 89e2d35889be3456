"""Tests for agent profile loading."""

from pathlib import Path

from task_orchestrator.agent.profile import (
	DEFAULT_AGENT_PROFILE,
	ContextMemoryMode,
	ProfileRegistry,
	load_profiles,
)
from task_orchestrator.approval import ApprovalState

PROFILES_YAML = """
profiles:
  - id: main
    name: Main
    model: provider/large
    tool_approvals:
      power/bash: never
  - id: reviewer
    name: Code Reviewer
    subagent:
      enabled: true
      description: Reviews code changes
      context_memory: last-message
  - id: broken
    name: Broken
    max_iterations: 0
"""


def test_missing_file_gives_default(tmp_path: Path):
	registry = load_profiles(tmp_path / "profiles.yaml")
	assert registry.list_profiles() == [DEFAULT_AGENT_PROFILE]


def test_load_yaml_skips_invalid(tmp_path: Path):
	path = tmp_path / "profiles.yaml"
	path.write_text(PROFILES_YAML)

	registry = load_profiles(path)

	assert [p.id for p in registry.list_profiles()] == ["main", "reviewer"]
	main = registry.get("main")
	assert main.tool_approvals == {"power/bash": ApprovalState.NEVER}
	reviewer = registry.get("reviewer")
	assert reviewer.subagent.context_memory == ContextMemoryMode.LAST_MESSAGE
	assert reviewer.subagent_id == "code-reviewer"


def test_unparseable_yaml_gives_default(tmp_path: Path):
	path = tmp_path / "profiles.yaml"
	path.write_text("profiles: [unclosed")
	assert load_profiles(path).list_profiles() == [DEFAULT_AGENT_PROFILE]


def test_get_falls_back_to_first(tmp_path: Path):
	path = tmp_path / "profiles.yaml"
	path.write_text(PROFILES_YAML)
	registry = load_profiles(path)

	assert registry.get(None).id == "main"
	assert registry.get("unknown").id == "main"


def test_subagents_exclude_main(tmp_path: Path):
	path = tmp_path / "profiles.yaml"
	path.write_text(PROFILES_YAML)
	registry = load_profiles(path)

	assert [p.id for p in registry.subagents_for(registry.get("main"))] == ["reviewer"]
	assert registry.subagents_for(registry.get("reviewer")) == []


def test_default_registry():
	assert ProfileRegistry().get("anything") is DEFAULT_AGENT_PROFILE
