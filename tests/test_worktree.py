"""Tests for task worktrees.

Uses real git repos (no mocked git commands) to verify actual behavior.
"""

import asyncio
import shutil
import subprocess
from pathlib import Path

import pytest

from task_orchestrator.agent.provider import AgentResponse
from task_orchestrator.task.models import WorkingMode
from task_orchestrator.task.task import TaskBusyError
from task_orchestrator.worktrees import (
	WorktreeError,
	branch_name_for,
	create_task_worktree,
	find_git_root,
	git,
	remove_task_worktree,
)

from .helpers import init_git_repo

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _branches(repo: Path) -> list[str]:
	result = subprocess.run(
		["git", "branch", "--format=%(refname:short)"],
		cwd=str(repo),
		capture_output=True,
		text=True,
		check=True,
	)
	return result.stdout.split()


class TestGitHelpers:
	@pytest.mark.asyncio
	async def test_find_git_root_from_subdir(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)
		sub = repo / "src"
		sub.mkdir()

		assert (await find_git_root(sub)).resolve() == repo.resolve()

	@pytest.mark.asyncio
	async def test_find_git_root_outside_repo(self, tmp_path: Path):
		plain = tmp_path / "plain"
		plain.mkdir()
		with pytest.raises(WorktreeError, match="Not a git repository"):
			await find_git_root(plain)

	def test_branch_name(self):
		assert branch_name_for("abc") == "task/abc"

	@pytest.mark.asyncio
	async def test_git_result(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)

		branch = await git("rev-parse", "--abbrev-ref", "HEAD", cwd=repo)
		assert branch.ok
		assert branch.output

		missing = await git("rev-parse", "--verify", "--quiet", "refs/heads/nope", cwd=repo)
		assert not missing.ok


class TestTaskWorktree:
	@pytest.mark.asyncio
	async def test_create_and_remove(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)
		worktrees = repo / ".task-orchestrator" / "worktrees"

		path, branch = await create_task_worktree(repo, worktrees, "t1")

		assert path == worktrees / "t1"
		assert branch == "task/t1"
		assert (path / "README.md").exists()
		assert "task/t1" in _branches(repo)

		await remove_task_worktree(repo, path)
		assert not path.exists()
		# The branch survives removal
		assert "task/t1" in _branches(repo)

	@pytest.mark.asyncio
	async def test_existing_worktree_reused(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)
		worktrees = tmp_path / "worktrees"

		first, _ = await create_task_worktree(repo, worktrees, "t1")
		(first / "scratch.txt").write_text("keep me")
		second, _ = await create_task_worktree(repo, worktrees, "t1")

		assert second == first
		assert (second / "scratch.txt").read_text() == "keep me"

	@pytest.mark.asyncio
	async def test_existing_branch_checked_out(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)
		worktrees = tmp_path / "worktrees"

		path, _ = await create_task_worktree(repo, worktrees, "t1")
		await remove_task_worktree(repo, path)
		again, branch = await create_task_worktree(repo, worktrees, "t1")

		assert again.exists()
		assert branch == "task/t1"

	@pytest.mark.asyncio
	async def test_remove_missing_is_noop(self, tmp_path: Path):
		repo = tmp_path / "repo"
		init_git_repo(repo)
		await remove_task_worktree(repo, tmp_path / "never-created")


class TestWorkingMode:
	@pytest.mark.asyncio
	async def test_switch_to_worktree_and_back(self, tmp_path: Path, manager):
		repo = tmp_path / "git-repo"
		init_git_repo(repo)
		project = manager.get_project(str(repo))
		task = await project.create_task(name="isolated")

		await task.set_working_mode(WorkingMode.WORKTREE)

		assert task.data.working_mode == WorkingMode.WORKTREE
		assert task.data.worktree_branch == f"task/{task.id}"
		assert task.task_dir == task.data.worktree_path
		assert Path(task.task_dir, "README.md").exists()

		await task.set_working_mode(WorkingMode.LOCAL)

		assert task.data.worktree_path is None
		assert task.task_dir == task.project_dir
		logs = [m.message for m in task.history.messages]
		assert logs == ["Working mode set to worktree.", "Working mode set to local."]

	@pytest.mark.asyncio
	async def test_worktree_outside_git_fails(self, project):
		task = await project.create_task()
		with pytest.raises(WorktreeError):
			await task.set_working_mode(WorkingMode.WORKTREE)
		assert task.data.working_mode == WorkingMode.LOCAL

	@pytest.mark.asyncio
	async def test_busy_task_cannot_switch(self, project, provider):
		release = asyncio.Event()

		async def hang(request, on_chunk):
			await release.wait()
			return AgentResponse(content="ok")

		provider.responses = [hang]
		task = await project.create_task()
		step = await task.submit_prompt("work")
		with pytest.raises(TaskBusyError):
			await task.set_working_mode(WorkingMode.WORKTREE)
		release.set()
		await step
