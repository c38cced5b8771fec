"""CLI for oracle-orchestrator: run, resume, checkpoints, and doctor commands."""

import argparse
import asyncio
import platform
import sys
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from rich.console import Console

from .config import OrchestrationSettings, load_config, load_orchestration_settings
from .context.manager import ContextManager
from .context.saturation import SaturationMonitor
from .errors import CheckpointNotFoundError, OrchestratorError
from .executors.command import CommandTaskExecutor
from .hitl.console import ConsoleHumanInTheLoop
from .hitl.models import InterventionPoint
from .logging_config import setup_logging
from .models import AutonomousConfig, AutonomousState, CompletionMode
from .oracle.keyword import KeywordOracleVerifier
from .orchestrator.checkpoints import SqliteCheckpointStore
from .orchestrator.engine import AutonomousOrchestrator
from .views import EventRenderer, render_checkpoints, render_history, render_status

CORE_DEPS = ["pydantic", "aiosqlite", "platformdirs", "python-dotenv", "rich"]

SUCCESS_STATES = {AutonomousState.COMPLETED, AutonomousState.STOPPED_BY_GOAL_ACHIEVED}


def _load_settings(args: argparse.Namespace) -> OrchestrationSettings:
	if getattr(args, "config", None):
		return load_orchestration_settings(args.config)
	return OrchestrationSettings()


def _apply_overrides(config: AutonomousConfig, args: argparse.Namespace) -> AutonomousConfig:
	"""Apply command-line flags on top of the file settings."""
	update: dict = {}
	if getattr(args, "max_iterations", None):
		update["max_iterations"] = args.max_iterations
	if getattr(args, "until_goal", False):
		update["completion_mode"] = CompletionMode.UNTIL_GOAL_ACHIEVED
	if getattr(args, "approve", False):
		points = list(config.required_approval_points)
		if InterventionPoint.BEFORE_TASK_START not in points:
			points.append(InterventionPoint.BEFORE_TASK_START)
		update["enable_human_in_the_loop"] = True
		update["required_approval_points"] = points
	if not update:
		return config
	return AutonomousConfig(**{**config.model_dump(), **update})


def _build_orchestrator(
	args: argparse.Namespace,
	settings: OrchestrationSettings,
	config: AutonomousConfig,
	console: Console,
	checkpoint_store: Optional[SqliteCheckpointStore],
) -> AutonomousOrchestrator:
	oracle = KeywordOracleVerifier(args.expect) if args.expect else None
	reviewer = ConsoleHumanInTheLoop(console) if config.enable_human_in_the_loop else None
	orchestrator = AutonomousOrchestrator(
		CommandTaskExecutor(args.command, timeout=args.timeout),
		oracle=oracle,
		human_in_the_loop=reviewer,
		config=config,
		resilience=settings.resilience,
		context_manager=ContextManager(saturation_monitor=SaturationMonitor(settings.saturation)),
		checkpoint_store=checkpoint_store,
	)
	orchestrator.subscribe(EventRenderer(console, verbose=args.verbose))
	return orchestrator


async def _open_store(db_path: Optional[str]) -> Optional[SqliteCheckpointStore]:
	if not db_path:
		return None
	store = SqliteCheckpointStore(db_path)
	await store.init()
	return store


async def _run(args: argparse.Namespace, console: Console) -> AutonomousState:
	settings = _load_settings(args)
	config = _apply_overrides(settings.autonomous, args)
	store = await _open_store(args.checkpoint_db)
	try:
		orchestrator = _build_orchestrator(args, settings, config, console, store)
		for prompt in args.prompts:
			orchestrator.enqueue_prompt(prompt)
		try:
			status = await orchestrator.start(config)
		except OrchestratorError as e:
			console.print(f"[red]Run failed:[/red] {e}")
			status = orchestrator.status()
		console.print()
		render_history(orchestrator.get_history(), console)
		render_status(status, console)
		return status.state
	finally:
		if store:
			await store.close()


async def _resume(args: argparse.Namespace, console: Console) -> AutonomousState:
	settings = _load_settings(args)
	store = await _open_store(args.db or str(load_config().checkpoints_db_path))
	try:
		checkpoint = await store.get(args.checkpoint_id)
		config = _apply_overrides(checkpoint.config_snapshot, args)
		orchestrator = _build_orchestrator(args, settings, config, console, store)
		orchestrator.inject_checkpoint(checkpoint)
		try:
			status = await orchestrator.start_from_checkpoint(checkpoint.id, config)
		except OrchestratorError as e:
			console.print(f"[red]Resume failed:[/red] {e}")
			status = orchestrator.status()
		render_status(status, console)
		return status.state
	finally:
		await store.close()


async def _list_checkpoints(db_path: Path, session_id: Optional[str], console: Console) -> None:
	if not db_path.exists():
		console.print(f"[dim]No checkpoint database at {db_path}[/dim]")
		return
	store = SqliteCheckpointStore(db_path)
	await store.init()
	try:
		render_checkpoints(await store.list_checkpoints(session_id), console)
	finally:
		await store.close()


def cmd_run(args: argparse.Namespace) -> None:
	"""Run prompts through a command with optional oracle and approvals."""
	console = Console()
	state = asyncio.run(_run(args, console))
	sys.exit(0 if state in SUCCESS_STATES else 1)


def cmd_resume(args: argparse.Namespace) -> None:
	"""Continue a session from a stored checkpoint."""
	console = Console()
	try:
		state = asyncio.run(_resume(args, console))
	except CheckpointNotFoundError as e:
		console.print(f"[red]{e}[/red]")
		sys.exit(1)
	sys.exit(0 if state in SUCCESS_STATES else 1)


def cmd_checkpoints(args: argparse.Namespace) -> None:
	"""List stored checkpoints."""
	db_path = Path(args.db) if args.db else load_config().checkpoints_db_path
	asyncio.run(_list_checkpoints(db_path, args.session_id, Console()))


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify installation and configuration."""
	print("oracle-orchestrator doctor")
	print(f"{'=' * 40}")

	config = load_config()
	issues: list[str] = []

	py_ver = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
	print(f"  Python:       {py_ver}")
	print(f"  Platform:     {platform.system()} {platform.machine()}")
	print()

	print("  Core deps:")
	for dep in CORE_DEPS:
		try:
			dep_ver = pkg_version(dep)
			print(f"    {dep:22s} {dep_ver}")
		except Exception:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	print("  Paths:")
	print(f"    config.toml:         {config.config_file} ({'found' if config.config_file.exists() else 'not found'})")
	print(f"    checkpoints:         {config.checkpoints_db_path}")
	print(f"    memory:              {config.memory_db_path}")
	print(f"    logs:                {config.log_dir}")
	print()

	if config.config_file.exists():
		try:
			load_orchestration_settings(config.config_file)
		except OrchestratorError as e:
			issues.append(str(e))

	if issues:
		print(f"  Issues ({len(issues)}):")
		for issue in issues:
			print(f"    - {issue}")
		sys.exit(1)
	print("  All checks passed.")


def _add_execution_args(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("--command", required=True, help="Command that receives each prompt on stdin")
	parser.add_argument("--expect", action="append", default=None, help="Keyword the output must contain (repeatable)")
	parser.add_argument("--max-iterations", type=int, default=None, help="Override max iterations")
	parser.add_argument("--config", type=str, default=None, help="TOML file with an [orchestration] table")
	parser.add_argument("--until-goal", action="store_true", help="Stop as soon as the oracle accepts an output")
	parser.add_argument("--approve", action="store_true", help="Ask for approval before each task")
	parser.add_argument("--timeout", type=float, default=600.0, help="Per-task command timeout in seconds")
	parser.add_argument("-v", "--verbose", action="store_true", help="Show every event")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="oracle-orchestrator",
		description="Autonomous task execution with oracle verification and human approval",
	)
	subparsers = parser.add_subparsers(dest="command_name")

	# run
	run_parser = subparsers.add_parser("run", help="Run prompts autonomously")
	run_parser.add_argument("prompts", nargs="+", help="Prompts to enqueue")
	_add_execution_args(run_parser)
	run_parser.add_argument("--checkpoint-db", type=str, default=None, help="Persist checkpoints to this SQLite file")
	run_parser.set_defaults(func=cmd_run)

	# resume
	resume_parser = subparsers.add_parser("resume", help="Resume a session from a checkpoint")
	resume_parser.add_argument("checkpoint_id", help="Checkpoint ID")
	_add_execution_args(resume_parser)
	resume_parser.add_argument("--db", type=str, default=None, help="Checkpoint database (default: data dir)")
	resume_parser.set_defaults(func=cmd_resume)

	# checkpoints
	cp_parser = subparsers.add_parser("checkpoints", help="List stored checkpoints")
	cp_parser.add_argument("session_id", nargs="?", default=None, help="Only this session")
	cp_parser.add_argument("--db", type=str, default=None, help="Checkpoint database (default: data dir)")
	cp_parser.set_defaults(func=cmd_checkpoints)

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	return parser


def main(argv: Optional[list[str]] = None) -> None:
	"""CLI entry point."""
	load_dotenv()
	parser = build_parser()
	args = parser.parse_args(argv)

	if not args.command_name:
		parser.print_help()
		sys.exit(1)

	config = load_config()
	setup_logging(level=config.log_level, log_dir=config.log_dir)
	args.func(args)


if __name__ == "__main__":
	main()
