"""CLI entry point for task-orchestrator."""

import argparse
import asyncio
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config import get_config
from .logging_config import setup_logging

console = Console()


async def _serve(args: argparse.Namespace) -> None:
	from .connector.app import serve_connector
	from .connector.manager import ConnectorManager
	from .project.manager import ProjectManager, set_project_manager
	from .server import create_server

	config = get_config()
	manager = ProjectManager(config)
	set_project_manager(manager)
	await manager.hook_manager.init()
	connectors = ConnectorManager(manager, manager.event_manager)

	host = args.host or config.connector_host
	port = args.port or config.connector_port
	jobs = [serve_connector(connectors, host=host, port=port, log_level=config.log_level)]
	if not getattr(args, "connector_only", False):
		mcp = create_server(config)
		jobs.append(mcp.run_stdio_async())

	try:
		await asyncio.gather(*jobs)
	finally:
		await connectors.close()
		await manager.close()
		set_project_manager(None)


def cmd_serve(args: argparse.Namespace) -> None:
	"""Run the MCP server (stdio) together with the connector websocket."""
	try:
		asyncio.run(_serve(args))
	except KeyboardInterrupt:
		pass


async def _load_tasks(project_dir: str):
	from .project.manager import ProjectManager

	manager = ProjectManager(get_config())
	try:
		return await manager.get_project(project_dir).list_tasks()
	finally:
		await manager.close()


def cmd_tasks(args: argparse.Namespace) -> None:
	"""List the tasks stored for a project."""
	tasks = asyncio.run(_load_tasks(args.project_dir))
	if not tasks:
		console.print("[dim]No tasks found.[/dim]")
		return

	table = Table(title=f"Tasks ({len(tasks)})")
	table.add_column("ID", style="cyan", no_wrap=True)
	table.add_column("Name")
	table.add_column("Mode")
	table.add_column("Parent", style="dim")
	table.add_column("Model", style="dim")
	table.add_column("Updated", style="dim")
	for data in tasks:
		table.add_row(
			data.id,
			data.name or "-",
			data.mode,
			data.parent_id or "",
			data.main_model or "",
			data.updated_at[:19],
		)
	console.print(table)


async def _load_history(project_dir: str, task_id: str, limit: int):
	from .project.manager import ProjectManager

	manager = ProjectManager(get_config())
	try:
		task = await manager.get_project(project_dir).get_task(task_id)
		if task is None:
			return None
		return await task.get_history(0, limit or None)
	finally:
		await manager.close()


def _message_text(message) -> str:
	if message.type == "tool":
		return f"{message.key} [{message.status.value}] {message.result if message.result is not None else ''}"
	if message.type == "log":
		return f"[{message.level}] {message.message}"
	return message.content


def cmd_history(args: argparse.Namespace) -> None:
	"""Print a task's context messages."""
	messages = asyncio.run(_load_history(args.project_dir, args.task_id, args.limit))
	if messages is None:
		console.print(f"[red]Task not found: {args.task_id}[/red]")
		sys.exit(1)

	table = Table(title=f"History of {args.task_id}")
	table.add_column("Type", style="cyan")
	table.add_column("ID", style="dim", no_wrap=True)
	table.add_column("Content")
	for message in messages:
		table.add_row(message.type, message.id[:8], _message_text(message))
	console.print(table)


_OUTCOME_STYLES = {
	"success": "green",
	"error": "red",
	"denied": "yellow",
	"aborted": "magenta",
	"blocked": "yellow",
}


def cmd_stats(args: argparse.Namespace) -> None:
	"""Show tool call telemetry, per tool or for one task."""
	from .instrumentation import ToolCallStore

	store = ToolCallStore(get_config().tool_calls_db_path)
	if args.task_id:
		records = store.query(task_id=args.task_id, limit=args.limit)
		table = Table(title=f"Tool calls of {args.task_id}")
		for column in ("At", "Tool", "Took", "Outcome", "Result"):
			table.add_column(column, justify="right" if column == "Took" else "left")
		for record in reversed(records):
			style = _OUTCOME_STYLES.get(record.outcome.value, "white")
			table.add_row(
				record.recorded_at[11:19],
				record.tool,
				f"{record.duration:.2f}s",
				f"[{style}]{record.outcome.value}[/{style}]",
				record.result_preview,
			)
		console.print(table)
		return

	stats = store.stats()
	if not stats:
		console.print("[dim]No tool calls recorded yet.[/dim]")
		return

	table = Table(title="Tool Call Statistics")
	table.add_column("Tool", style="cyan")
	for column in ("Calls", "Avg", "Errors", "Denied", "Success"):
		table.add_column(column, justify="right")
	for s in stats:
		table.add_row(
			s.tool,
			str(s.calls),
			f"{s.avg_duration:.2f}s",
			str(s.failures),
			str(s.denials),
			f"{s.success_rate:.0f}%",
		)
	console.print(table)


def main() -> None:
	"""CLI entry point."""
	load_dotenv()

	parser = argparse.ArgumentParser(
		prog="task-orchestrator",
		description="Task orchestration core: tasks, hooks, approvals, subagents and connectors",
	)
	subparsers = parser.add_subparsers(dest="command")

	# serve
	serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio) and connector websocket")
	serve_parser.add_argument("--host", type=str, default=None, help="Connector host")
	serve_parser.add_argument("--port", type=int, default=None, help="Connector port")
	serve_parser.add_argument("--connector-only", action="store_true", help="Skip the MCP stdio server")
	serve_parser.set_defaults(func=cmd_serve)

	# connector
	connector_parser = subparsers.add_parser("connector", help="Run only the connector websocket server")
	connector_parser.add_argument("--host", type=str, default=None, help="Connector host")
	connector_parser.add_argument("--port", type=int, default=None, help="Connector port")
	connector_parser.set_defaults(func=cmd_serve, connector_only=True)

	# tasks
	tasks_parser = subparsers.add_parser("tasks", help="List a project's tasks")
	tasks_parser.add_argument("project_dir", help="Project base directory")
	tasks_parser.set_defaults(func=cmd_tasks)

	# history
	history_parser = subparsers.add_parser("history", help="Show a task's messages")
	history_parser.add_argument("project_dir", help="Project base directory")
	history_parser.add_argument("task_id", help="Task ID")
	history_parser.add_argument("--limit", type=int, default=0, help="Max messages (0 = all)")
	history_parser.set_defaults(func=cmd_history)

	# stats
	stats_parser = subparsers.add_parser("stats", help="Tool call statistics")
	stats_parser.add_argument("--task-id", type=str, default=None, help="Show calls of one task")
	stats_parser.add_argument("--limit", type=int, default=50, help="Max results")
	stats_parser.set_defaults(func=cmd_stats)

	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	config = get_config()
	setup_logging(config.log_level, config.log_dir)
	args.func(args)


if __name__ == "__main__":
	main()
