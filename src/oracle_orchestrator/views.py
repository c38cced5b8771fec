"""Rich terminal views for orchestrator events, status and checkpoints."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .events import AutonomousEvent, EventType
from .models import AutonomousState, AutonomousStatus, ExecutionCheckpoint, ExecutionHistoryEntry, truncate

EVENT_STYLES = {
	EventType.STARTED: "bold cyan",
	EventType.COMPLETED: "bold green",
	EventType.STOPPED: "bold yellow",
	EventType.ERROR: "bold red",
	EventType.MAX_ITERATIONS_REACHED: "yellow",
	EventType.ITERATION_STARTED: "cyan",
	EventType.TASK_FAILED: "red",
	EventType.RETRY_ATTEMPT: "yellow",
	EventType.FALLBACK_TRIGGERED: "yellow",
	EventType.FALLBACK_FAILED: "red",
	EventType.ORACLE_VERIFIED: "magenta",
	EventType.ORACLE_COMPLETE: "green",
	EventType.ORACLE_ERROR: "red",
	EventType.HUMAN_APPROVAL_TIMEOUT: "yellow",
	EventType.SATURATION_CHANGED: "yellow",
}

# Too chatty for the default view
QUIET_EVENTS = {
	EventType.HISTORY_ENTRY_ADDED,
	EventType.CONTEXT_UPDATED,
	EventType.CHECKPOINT_CREATED,
	EventType.TASK_ENQUEUED,
}


def state_style(state: AutonomousState) -> str:
	"""Return a Rich style string for a lifecycle state."""
	if state in (AutonomousState.COMPLETED, AutonomousState.STOPPED_BY_GOAL_ACHIEVED):
		return "green"
	if state == AutonomousState.STOPPED_BY_ERROR:
		return "red"
	if state.is_terminal:
		return "yellow"
	return "cyan"


class EventRenderer:
	"""Subscriber that prints orchestrator events as they happen."""

	def __init__(self, console: Optional[Console] = None, verbose: bool = False):
		self.console = console or Console()
		self.verbose = verbose

	def __call__(self, event: AutonomousEvent) -> None:
		if event.type in QUIET_EVENTS and not self.verbose:
			return
		if event.type == EventType.TASK_OUTPUT:
			self.console.print(f"  [dim]|[/dim] {event.message}", markup=False, highlight=False)
			return
		style = EVENT_STYLES.get(event.type, "white")
		label = event.type.value.replace("_", " ")
		self.console.print(f"[{style}]{label:>24}[/{style}]  {event.message}", highlight=False)
		if event.verdict is not None and event.verdict.analysis:
			self.console.print(f"{'':>26}[dim]{truncate(event.verdict.analysis, 200)}[/dim]", highlight=False)


def render_status(status: AutonomousStatus, console: Optional[Console] = None) -> None:
	"""Render a summary panel for a finished or running session."""
	console = console or Console()
	style = state_style(status.state)
	lines = [
		f"State:        [{style}]{status.state.value}[/{style}]",
		f"Session:      {status.session_id or '-'}",
		f"Iterations:   {status.current_iteration}/{status.max_iterations}",
		f"Mode:         {status.completion_mode.value}",
		f"Oracle:       {'on' if status.oracle_enabled else 'off'} (max {status.max_oracle_iterations} passes)",
		f"History:      {status.history_entry_count} entries",
		f"Checkpoints:  {status.checkpoint_count}",
		f"Queued:       {status.queued_task_count}",
	]
	if status.last_error:
		lines.append(f"Last error:   [red]{status.last_error}[/red]")
	console.print(Panel("\n".join(lines), title="Session Summary", border_style=style))


def render_history(entries: list[ExecutionHistoryEntry], console: Optional[Console] = None) -> None:
	"""Render one row per oracle pass."""
	console = console or Console()
	if not entries:
		console.print("[dim]No history recorded.[/dim]")
		return

	table = Table(title="Execution History")
	table.add_column("Iter", justify="right")
	table.add_column("Pass", justify="right")
	table.add_column("Status")
	table.add_column("Confidence", justify="right")
	table.add_column("Prompt")
	table.add_column("Analysis")

	for entry in entries:
		verdict = entry.oracle_verdict
		status = "[green]OK[/green]" if entry.success else "[red]FAIL[/red]"
		table.add_row(
			str(entry.iteration_number),
			str(entry.oracle_iteration),
			status,
			f"{verdict.confidence:.0%}" if verdict else "-",
			truncate(entry.execution_prompt, 40),
			truncate(verdict.analysis, 60) if verdict else "",
		)
	console.print(table)


def render_checkpoints(checkpoints: list[ExecutionCheckpoint], console: Optional[Console] = None) -> None:
	"""Render a table of checkpoints."""
	console = console or Console()
	if not checkpoints:
		console.print("[dim]No checkpoints recorded yet.[/dim]")
		return

	table = Table(title="Checkpoints")
	table.add_column("Checkpoint ID", style="cyan")
	table.add_column("Session")
	table.add_column("Iteration", justify="right")
	table.add_column("State")
	table.add_column("Queued", justify="right")
	table.add_column("History", justify="right")
	table.add_column("Created")

	for cp in checkpoints:
		state = cp.state.value if cp.state else "-"
		style = state_style(cp.state) if cp.state else "white"
		table.add_row(
			cp.id,
			cp.session_id,
			str(cp.iteration_number),
			f"[{style}]{state}[/{style}]",
			str(len(cp.queue_snapshot)),
			str(len(cp.history_snapshot)),
			cp.created_at.strftime("%Y-%m-%d %H:%M:%S"),
		)
	console.print(table)
