"""Pytest fixtures shared across the suite."""

from pathlib import Path

import pytest

from .helpers import ScriptedProvider, make_manager


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
	directory = tmp_path / "repo"
	directory.mkdir()
	return directory


@pytest.fixture
def provider() -> ScriptedProvider:
	return ScriptedProvider()


@pytest.fixture
async def manager(tmp_path: Path, provider: ScriptedProvider):
	manager = make_manager(tmp_path, provider)
	yield manager
	await manager.close()


@pytest.fixture
def project(manager, project_dir: Path):
	return manager.get_project(str(project_dir))
