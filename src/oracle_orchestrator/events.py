"""
Typed events emitted by the orchestrator.

Subscribers are plain callables invoked synchronously, in subscription
order, on the orchestrator's own control flow. A subscriber that raises is
logged and skipped; it never interrupts the loop.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from .models import AutonomousState, ExecutionHistoryEntry, OracleVerdict

logger = logging.getLogger(__name__)


class EventType(str, Enum):
	"""Kinds of orchestrator events."""
	# Lifecycle
	STARTED = "started"
	PAUSED = "paused"
	RESUMED = "resumed"
	STOPPED = "stopped"
	COMPLETED = "completed"
	ERROR = "error"

	# Queue
	TASK_ENQUEUED = "task_enqueued"
	QUEUE_EMPTY = "queue_empty"
	QUEUE_CLEARED = "queue_cleared"

	# Iterations
	ITERATION_STARTED = "iteration_started"
	ITERATION_COMPLETED = "iteration_completed"
	MAX_ITERATIONS_REACHED = "max_iterations_reached"

	# Tasks
	TASK_STARTED = "task_started"
	TASK_OUTPUT = "task_output"
	TASK_COMPLETED = "task_completed"
	TASK_FAILED = "task_failed"
	RETRY_ATTEMPT = "retry_attempt"
	FALLBACK_TRIGGERED = "fallback_triggered"
	FALLBACK_SUCCEEDED = "fallback_succeeded"
	FALLBACK_FAILED = "fallback_failed"

	# Oracle
	ORACLE_VERIFYING = "oracle_verifying"
	ORACLE_VERIFIED = "oracle_verified"
	ORACLE_RETRYING = "oracle_retrying"
	ORACLE_COMPLETE = "oracle_complete"
	ORACLE_ERROR = "oracle_error"
	HISTORY_ENTRY_ADDED = "history_entry_added"

	# Human in the loop
	HUMAN_APPROVAL_REQUESTED = "human_approval_requested"
	HUMAN_APPROVAL_RECEIVED = "human_approval_received"
	HUMAN_APPROVAL_TIMEOUT = "human_approval_timeout"
	HUMAN_FEEDBACK_REQUESTED = "human_feedback_requested"
	HUMAN_FEEDBACK_RECEIVED = "human_feedback_received"

	# Checkpoints and context
	CHECKPOINT_CREATED = "checkpoint_created"
	CHECKPOINT_RESTORED = "checkpoint_restored"
	CONTEXT_UPDATED = "context_updated"
	REFLECTION_CAPTURED = "reflection_captured"
	SATURATION_CHANGED = "saturation_changed"


@dataclass
class AutonomousEvent:
	"""A single notification from the orchestrator."""
	type: EventType
	state: AutonomousState
	message: str = ""
	task_id: Optional[str] = None
	verdict: Optional[OracleVerdict] = None
	oracle_iteration: Optional[int] = None
	history_entry: Optional[ExecutionHistoryEntry] = None
	data: dict[str, Any] = field(default_factory=dict)
	timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[AutonomousEvent], None]


class EventBus:
	"""Ordered list of synchronous subscribers."""

	def __init__(self):
		self._handlers: list[EventHandler] = []

	def subscribe(self, handler: EventHandler) -> Callable[[], None]:
		"""Register a handler. Returns a function that unsubscribes it."""
		self._handlers.append(handler)

		def unsubscribe() -> None:
			if handler in self._handlers:
				self._handlers.remove(handler)

		return unsubscribe

	def publish(self, event: AutonomousEvent) -> None:
		logger.debug(f"[{event.state.value}] {event.type.value}: {event.message}")
		for handler in list(self._handlers):
			try:
				handler(event)
			except Exception as e:
				logger.error(f"Event handler failed for {event.type.value}: {e}")

	def __len__(self) -> int:
		return len(self._handlers)
