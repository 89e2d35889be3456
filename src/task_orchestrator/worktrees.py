"""Git worktrees backing tasks in worktree working mode."""

import asyncio
import logging
from pathlib import Path
from typing import NamedTuple

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "task"
GIT_TIMEOUT = 30.0


class WorktreeError(Exception):
	"""A git command needed for a task worktree failed."""
	pass


class GitResult(NamedTuple):
	returncode: int
	output: str
	error: str

	@property
	def ok(self) -> bool:
		return self.returncode == 0


async def git(*args: str, cwd: Path, timeout: float = GIT_TIMEOUT) -> GitResult:
	process = await asyncio.create_subprocess_exec(
		"git", *args,
		cwd=str(cwd),
		stdout=asyncio.subprocess.PIPE,
		stderr=asyncio.subprocess.PIPE,
	)
	try:
		out, err = await asyncio.wait_for(process.communicate(), timeout=timeout)
	except asyncio.TimeoutError:
		process.kill()
		await process.wait()
		return GitResult(-1, "", f"git {args[0]} did not finish within {timeout:.0f}s")
	return GitResult(process.returncode or 0, out.decode().strip(), err.decode().strip())


async def find_git_root(path: Path) -> Path:
	result = await git("rev-parse", "--show-toplevel", cwd=path)
	if not result.ok:
		raise WorktreeError(f"Not a git repository: {path} ({result.error})")
	return Path(result.output)


def branch_name_for(task_id: str) -> str:
	return f"{BRANCH_PREFIX}/{task_id}"


async def _branch_exists(repo: Path, branch: str) -> bool:
	result = await git("rev-parse", "--verify", "--quiet", f"refs/heads/{branch}", cwd=repo)
	return result.ok


async def create_task_worktree(project_dir: Path, worktrees_dir: Path, task_id: str) -> tuple[Path, str]:
	"""
	Check out the task's branch into <worktrees_dir>/<task_id>.

	The branch is created from the current HEAD the first time. An existing
	checkout is reused as is, and a branch left behind by an earlier removal
	is checked out again so its commits carry over.

	Returns:
		The worktree path and the branch name

	Raises:
		WorktreeError: If the project is not in a git repository or git fails
	"""
	repo = await find_git_root(project_dir)
	path = Path(worktrees_dir) / task_id
	branch = branch_name_for(task_id)

	if (path / ".git").exists():
		logger.info(f"Task {task_id} keeps its worktree at {path}")
		return path, branch

	path.parent.mkdir(parents=True, exist_ok=True)
	if await _branch_exists(repo, branch):
		result = await git("worktree", "add", str(path), branch, cwd=repo)
	else:
		result = await git("worktree", "add", "-b", branch, str(path), cwd=repo)
	if not result.ok:
		raise WorktreeError(f"Could not create worktree for task {task_id}: {result.error}")

	logger.info(f"Task {task_id} now works in {path} on {branch}")
	return path, branch


async def remove_task_worktree(project_dir: Path, worktree_path: Path, force: bool = True) -> None:
	"""Remove a task's checkout. Its branch stays in the repository."""
	if not Path(worktree_path).exists():
		return

	repo = await find_git_root(project_dir)
	args = ["worktree", "remove", str(worktree_path)] + (["--force"] if force else [])
	result = await git(*args, cwd=repo)
	if not result.ok:
		raise WorktreeError(f"Could not remove worktree {worktree_path}: {result.error}")
	logger.info(f"Removed worktree {worktree_path}")
