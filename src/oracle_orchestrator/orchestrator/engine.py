"""
Autonomous Orchestrator - queue-driven execution with oracle verification.

Responsibilities:
- Process queued requests one iteration at a time, bounded by max_iterations
- Refine each task through the oracle loop, bounded by max_oracle_iterations
- Gate tasks on human approval at configured intervention points
- Track execution context, memory and saturation as a side channel
- Snapshot queue, history and config into checkpoints and restore from them
- Emit typed events for every lifecycle, queue, task and oracle transition
"""

import asyncio
import logging
from collections import deque
from typing import Any, Optional

from ..cancellation import CancellationSignal
from ..context.manager import ContextManager
from ..context.saturation import SaturationChange
from ..errors import CheckpointNotFoundError, InvalidStateError, OperationCancelledError
from ..events import AutonomousEvent, EventBus, EventHandler, EventType
from ..executors.base import RequestFactory, TaskExecutor, TaskOutput, default_request_factory
from ..executors.fallback import FallbackStrategy
from ..executors.resilient import ResilienceEvent, ResilienceSettings, ResilientExecutor
from ..hitl.models import (
	ApprovalDecision,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanInTheLoop,
	HumanNotification,
	InterventionPoint,
	NotificationLevel,
	RiskLevel,
)
from ..models import (
	AutonomousConfig,
	AutonomousState,
	AutonomousStatus,
	CompletionMode,
	ErrorCategory,
	ErrorResolution,
	ExecutionCheckpoint,
	ExecutionContext,
	ExecutionHistoryEntry,
	OracleVerdict,
	QueuedTask,
	short_id,
	truncate,
	utcnow,
)
from ..oracle.base import OracleVerifier
from .approvals import ApprovalGate
from .checkpoints import SqliteCheckpointStore

logger = logging.getLogger(__name__)

DEFAULT_GOAL = "Autonomous execution session"
CONTEXT_OUTPUT_LIMIT = 1000
RESTORED_OUTPUT_LIMIT = 500


class AutonomousOrchestrator:
	"""
	Drives an executor and an oracle until the queue is drained or a stop condition hits.

	Usage:
		orchestrator = AutonomousOrchestrator(executor, oracle=oracle)
		orchestrator.subscribe(print)
		orchestrator.enqueue_prompt("What is the capital of France?")
		status = await orchestrator.start(AutonomousConfig(max_iterations=3))
	"""

	def __init__(
		self,
		executor: TaskExecutor,
		oracle: Optional[OracleVerifier] = None,
		human_in_the_loop: Optional[HumanInTheLoop] = None,
		request_factory: RequestFactory = default_request_factory,
		config: Optional[AutonomousConfig] = None,
		resilience: Optional[ResilienceSettings] = None,
		fallback_strategy: Optional[FallbackStrategy] = None,
		context_manager: Optional[ContextManager] = None,
		checkpoint_store: Optional[SqliteCheckpointStore] = None,
	):
		"""
		Initialize the orchestrator.

		Args:
			executor: Runs individual requests
			oracle: Judges outputs; without one every task runs exactly once
			human_in_the_loop: Reviewer for approvals and feedback
			request_factory: Builds a request from (request_id, prompt)
			config: Default configuration, replaced by the one passed to start()
			resilience: Retry/backoff settings for the executor
			fallback_strategy: Last-resort results after retries are exhausted
			context_manager: Context provider, memory store and saturation monitor
			checkpoint_store: Optional durable copy of every checkpoint
		"""
		self.config = config or AutonomousConfig()
		self.executor = ResilientExecutor(
			executor,
			settings=resilience,
			fallback_strategy=fallback_strategy,
			on_event=self._on_resilience_event,
		)
		self.oracle = oracle
		self.request_factory = request_factory
		self.context = context_manager or ContextManager()
		self.checkpoint_store = checkpoint_store
		self.events = EventBus()
		self._gate = ApprovalGate(human_in_the_loop, self._emit)

		self._state = AutonomousState.IDLE
		self._queue: deque[Any] = deque()
		self._history: dict[str, ExecutionHistoryEntry] = {}
		self._checkpoints: list[ExecutionCheckpoint] = []
		self._session_id: Optional[str] = None
		self._iteration = 0
		self._oracle_iteration = 0
		self._current_task_id: Optional[str] = None
		self._last_error: Optional[str] = None
		self._pending_goal: Optional[str] = None
		self._execution_context: Optional[ExecutionContext] = None
		self._cancel: Optional[CancellationSignal] = None
		self._resumed: Optional[asyncio.Event] = None
		self._restored = False

		self.context.saturation.on_level_changed(self._on_saturation_changed)

	# =========================================================================
	# Events
	# =========================================================================

	def subscribe(self, handler: EventHandler):
		"""Register an event handler. Returns an unsubscribe function."""
		return self.events.subscribe(handler)

	def _emit(
		self,
		event_type: EventType,
		message: str = "",
		task_id: Optional[str] = None,
		verdict: Optional[OracleVerdict] = None,
		oracle_iteration: Optional[int] = None,
		history_entry: Optional[ExecutionHistoryEntry] = None,
		data: Optional[dict] = None,
	) -> None:
		self.events.publish(AutonomousEvent(
			type=event_type,
			state=self._state,
			message=message,
			task_id=task_id,
			verdict=verdict,
			oracle_iteration=oracle_iteration,
			history_entry=history_entry,
			data=data or {},
		))

	def _on_resilience_event(self, event: ResilienceEvent) -> None:
		self._emit(
			EventType(event.kind),
			event.message or event.kind.replace("_", " "),
			task_id=self._current_task_id or event.request_id,
			data={"attempt": event.attempt, **event.data},
		)

	def _on_saturation_changed(self, change: SaturationChange) -> None:
		self._emit(
			EventType.SATURATION_CHANGED,
			f"Context saturation {change.previous_level.value} -> {change.new_level.value}",
			data={
				"level": change.new_level.value,
				"percentage": change.state.percentage,
				"recommended_action": change.state.recommended_action.value,
			},
		)

	# =========================================================================
	# Queries
	# =========================================================================

	@property
	def state(self) -> AutonomousState:
		return self._state

	@property
	def session_id(self) -> Optional[str]:
		return self._session_id

	@property
	def execution_context(self) -> Optional[ExecutionContext]:
		return self._execution_context

	def status(self) -> AutonomousStatus:
		"""Point-in-time snapshot of the orchestrator."""
		cfg = self.config
		return AutonomousStatus(
			state=self._state,
			session_id=self._session_id,
			queued_task_count=len(self._queue),
			current_iteration=self._iteration,
			max_iterations=cfg.max_iterations,
			oracle_enabled=cfg.enable_oracle and self.oracle is not None and self.oracle.is_configured,
			current_oracle_iteration=self._oracle_iteration,
			max_oracle_iterations=cfg.max_oracle_iterations,
			completion_mode=cfg.completion_mode,
			checkpoint_count=len(self._checkpoints),
			checkpointing_enabled=cfg.enable_checkpointing,
			history_entry_count=len(self._history),
			current_task_id=self._current_task_id,
			last_error=self._last_error,
		)

	def get_history(self) -> list[ExecutionHistoryEntry]:
		return sorted(self._history.values(), key=lambda entry: entry.started_at)

	def get_checkpoints(self) -> list[ExecutionCheckpoint]:
		return list(self._checkpoints)

	def get_queue(self) -> list[Any]:
		return list(self._queue)

	# =========================================================================
	# Commands
	# =========================================================================

	def enqueue_task(self, request: Any) -> None:
		self._queue.append(request)
		self._emit(EventType.TASK_ENQUEUED, f"Task enqueued: {request.request_id}", task_id=request.request_id)

	def enqueue_prompt(self, prompt: str) -> Any:
		"""Create a request for the prompt and enqueue it. The prompt becomes the session goal."""
		request = self.request_factory(short_id(), prompt)
		self._pending_goal = prompt
		if self.config.enable_context_tracking and self._execution_context is not None:
			self._execution_context = self._execution_context.with_goal(prompt)
		self.enqueue_task(request)
		return request

	def clear_queue(self) -> None:
		self._queue.clear()
		self._emit(EventType.QUEUE_CLEARED, "Task queue cleared")

	def pause(self) -> None:
		"""Request a pause. Takes effect before the next task is dequeued."""
		if self._state != AutonomousState.RUNNING:
			return
		self._state = AutonomousState.PAUSED
		if self._resumed is not None:
			self._resumed.clear()
		self._emit(EventType.PAUSED, "Execution paused")

	def resume(self) -> None:
		if self._state != AutonomousState.PAUSED:
			return
		self._state = AutonomousState.RUNNING
		if self._resumed is not None:
			self._resumed.set()
		self._emit(EventType.RESUMED, "Execution resumed")

	def stop(self) -> None:
		"""Request cancellation. The run ends in STOPPED_BY_USER."""
		if self._cancel is not None:
			self._cancel.cancel("Stopped by user")

	def inject_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
		"""Add an externally persisted checkpoint to the list."""
		self._checkpoints.append(checkpoint)

	# =========================================================================
	# Lifecycle
	# =========================================================================

	async def start(self, config: Optional[AutonomousConfig] = None) -> AutonomousStatus:
		"""
		Run until the queue is drained or a stop condition is hit.

		Args:
			config: Configuration for this run (defaults to the current one)

		Returns:
			Final status snapshot

		Raises:
			InvalidStateError: If already running
			Exception: Whatever ended the run, when continue_on_failure is off
		"""
		if self._state in (AutonomousState.RUNNING, AutonomousState.PAUSED):
			logger.warning("Autonomous execution already running")
			raise InvalidStateError("Autonomous execution already running")

		if config is not None:
			self.config = config
		cfg = self.config

		resuming = self._restored
		self._restored = False
		if not resuming:
			if self._session_id is not None:
				self.context.clear_session(self._session_id)
			self._session_id = short_id()
			self._iteration = 0
			self._history.clear()
			self.executor.reset()
			self._execution_context = None
			if cfg.enable_context_tracking:
				self._execution_context = ExecutionContext(
					session_id=self._session_id,
					original_goal=self._pending_goal or DEFAULT_GOAL,
					max_outputs=cfg.max_context_outputs,
					max_learnings=cfg.max_context_learnings,
				)
		elif cfg.enable_context_tracking and self._execution_context is None:
			self._execution_context = self._rebuild_context(self.get_history())

		self._oracle_iteration = 0
		self._last_error = None
		self._cancel = CancellationSignal()
		self._resumed = asyncio.Event()
		self._resumed.set()

		self._state = AutonomousState.RUNNING
		logger.info(f"Session {self._session_id} started ({len(self._queue)} queued)")
		self._emit(EventType.STARTED, "Autonomous execution started" if not resuming else "Autonomous execution resumed from checkpoint")

		try:
			await self._run_loop()
		except OperationCancelledError as e:
			self._state = AutonomousState.STOPPED_BY_USER
			self._emit(EventType.STOPPED, f"Execution stopped by user: {e}")
		except asyncio.CancelledError:
			self._state = AutonomousState.STOPPED_BY_USER
			self._emit(EventType.STOPPED, "Execution cancelled")
			raise
		except Exception as e:
			self._last_error = str(e)
			self._state = AutonomousState.STOPPED_BY_ERROR
			logger.error(f"Session {self._session_id} stopped by error: {e}")
			self._emit(EventType.ERROR, f"Execution stopped by error: {e}", data={"error_type": type(e).__name__})
			raise
		finally:
			self._current_task_id = None
			logger.info(f"Session {self._session_id} finished: {self._state.value}")

		await self._gate.notify(cfg, HumanNotification(
			title="Execution finished",
			message=f"Session {self._session_id} ended with {self._state.value} after {self._iteration} iterations",
			level=NotificationLevel.SUCCESS if self._state != AutonomousState.STOPPED_BY_USER else NotificationLevel.WARNING,
		))
		return self.status()

	async def start_from_checkpoint(
		self,
		checkpoint_id: str,
		config: Optional[AutonomousConfig] = None,
	) -> AutonomousStatus:
		"""
		Restore a checkpoint and continue its session.

		A rejected or timed-out restore approval emits STOPPED and leaves the
		orchestrator as it was.

		Raises:
			InvalidStateError: If the orchestrator is running
			CheckpointNotFoundError: If the id is unknown in memory and in the store
		"""
		if self._state in (AutonomousState.RUNNING, AutonomousState.PAUSED):
			raise InvalidStateError("Cannot restore while running")

		checkpoint = next((cp for cp in self._checkpoints if cp.id == checkpoint_id), None)
		if checkpoint is None and self.checkpoint_store is not None:
			checkpoint = await self.checkpoint_store.get(checkpoint_id)
		if checkpoint is None:
			raise CheckpointNotFoundError(f"Checkpoint {checkpoint_id} not found")

		if self._gate.should_request(self.config, InterventionPoint.BEFORE_CHECKPOINT_RESTORE):
			try:
				approval = await self._gate.request_approval(
					self.config,
					InterventionPoint.BEFORE_CHECKPOINT_RESTORE,
					f"Restore from checkpoint at iteration {checkpoint.iteration_number}?",
					risk_level=RiskLevel.MEDIUM,
				)
			except OperationCancelledError as e:
				self._emit(EventType.STOPPED, f"Checkpoint restore not approved: {e}")
				return self.status()
			if approval.decision == ApprovalDecision.REJECTED:
				self._emit(EventType.STOPPED, "Checkpoint restore rejected by human")
				return self.status()

		self.restore_from_checkpoint(checkpoint)
		return await self.start(config or checkpoint.config_snapshot)

	def restore_from_checkpoint(self, checkpoint: ExecutionCheckpoint) -> None:
		"""
		Replace session, counters, config, queue and history with the checkpoint's.

		Raises:
			InvalidStateError: If the orchestrator is running
		"""
		if self._state in (AutonomousState.RUNNING, AutonomousState.PAUSED):
			raise InvalidStateError("Cannot restore while running")

		self._session_id = checkpoint.session_id
		self._iteration = checkpoint.iteration_number
		self._oracle_iteration = 0
		self.config = checkpoint.config_snapshot

		self._queue.clear()
		for task in checkpoint.queue_snapshot:
			self._queue.append(self.request_factory(task.request_id, task.prompt))

		self._history.clear()
		for entry in checkpoint.history_snapshot:
			self._history[entry.id] = entry

		self._execution_context = None
		if self.config.enable_context_tracking:
			self._execution_context = self._rebuild_context(self.get_history())

		self._state = AutonomousState.IDLE
		self._restored = True
		logger.info(f"Restored checkpoint {checkpoint.id} (session {checkpoint.session_id}, iteration {checkpoint.iteration_number})")
		self._emit(
			EventType.CHECKPOINT_RESTORED,
			f"Restored from checkpoint {checkpoint.id} at iteration {checkpoint.iteration_number}",
			data={"checkpoint_id": checkpoint.id},
		)

	def _rebuild_context(self, history: list[ExecutionHistoryEntry]) -> ExecutionContext:
		"""Replay history in chronological order into a fresh context."""
		cfg = self.config
		context = ExecutionContext(
			session_id=self._session_id or short_id(),
			original_goal=self._pending_goal or "Restored session",
			current_iteration=self._iteration,
			max_outputs=cfg.max_context_outputs,
			max_learnings=cfg.max_context_learnings,
		)
		for entry in history:
			if entry.execution_output:
				context = context.with_output(truncate(entry.execution_output, RESTORED_OUTPUT_LIMIT))
			reflection = entry.oracle_verdict.reflection if entry.oracle_verdict else None
			if reflection is not None:
				context = (
					context
					.with_learning(reflection.to_learning(entry.iteration_number))
					.with_reflection(reflection.to_insight(entry.oracle_verdict.analysis))
				)
		return context

	# =========================================================================
	# Main loop
	# =========================================================================

	async def _wait_while_paused(self) -> None:
		while self._state == AutonomousState.PAUSED:
			resumed = asyncio.ensure_future(self._resumed.wait())
			cancelled = asyncio.ensure_future(self._cancel.wait())
			try:
				await asyncio.wait({resumed, cancelled}, return_when=asyncio.FIRST_COMPLETED)
			finally:
				resumed.cancel()
				cancelled.cancel()
			self._cancel.raise_if_cancelled()

	async def _run_loop(self) -> None:
		cfg = self.config
		waiting = False

		while True:
			self._cancel.raise_if_cancelled()
			await self._wait_while_paused()

			if not self._queue:
				if cfg.completion_mode == CompletionMode.UNTIL_QUEUE_EMPTY:
					self._state = AutonomousState.COMPLETED
					self._emit(EventType.COMPLETED, "Queue empty, execution completed")
					return
				if not waiting:
					self._emit(EventType.QUEUE_EMPTY, "Waiting for tasks...")
					waiting = True
				await self._cancel.sleep(cfg.queue_poll_interval_seconds)
				continue
			waiting = False

			request = self._queue.popleft()

			if self._iteration >= cfg.max_iterations:
				self._queue.appendleft(request)
				self._state = AutonomousState.STOPPED_BY_MAX_ITERATIONS
				self._emit(EventType.MAX_ITERATIONS_REACHED, f"Max iterations ({cfg.max_iterations}) reached")
				return

			if self._gate.should_request(cfg, InterventionPoint.BEFORE_TASK_START):
				approval = await self._gate.request_approval(
					cfg,
					InterventionPoint.BEFORE_TASK_START,
					f"Start task: {truncate(request.prompt, 100)}",
					task_id=request.request_id,
					cancel=self._cancel,
				)
				if approval.decision == ApprovalDecision.REJECTED:
					self._state = AutonomousState.STOPPED_BY_USER
					self._emit(EventType.STOPPED, "Task start rejected by human", task_id=request.request_id)
					return
				if approval.decision == ApprovalDecision.MODIFY_AND_APPROVE and approval.modified_action:
					request = self.request_factory(request.request_id, approval.modified_action)

			self._iteration += 1
			self.context.reset_iteration()
			self._emit(EventType.ITERATION_STARTED, f"Starting iteration {self._iteration}", task_id=request.request_id)

			if self._execution_context is not None:
				self._execution_context = self._execution_context.with_next_iteration(self._iteration)
				self._emit(EventType.CONTEXT_UPDATED, "Context updated for new iteration")

			final_state, final_message = await self._run_iteration(request)

			await self._checkpoint_if_enabled()

			if final_state is not None:
				self._state = final_state
				event_type = EventType.STOPPED if final_state == AutonomousState.STOPPED_BY_USER else EventType.COMPLETED
				self._emit(event_type, final_message)
				return

	async def _run_iteration(self, request: Any) -> tuple[Optional[AutonomousState], str]:
		"""Run one task. Returns the terminal state to enter, if any, and its message."""
		cfg = self.config
		try:
			goal_achieved = await self._run_task(request)
		except (OperationCancelledError, asyncio.CancelledError):
			raise
		except Exception as e:
			if not cfg.continue_on_failure:
				await self._checkpoint_if_enabled()
				raise
			return await self._handle_task_failure(request, e)

		if goal_achieved and cfg.completion_mode == CompletionMode.UNTIL_GOAL_ACHIEVED:
			return AutonomousState.STOPPED_BY_GOAL_ACHIEVED, "Goal achieved"

		self._emit(EventType.ITERATION_COMPLETED, f"Iteration {self._iteration} completed", task_id=request.request_id)

		if cfg.enable_human_in_the_loop and cfg.request_feedback_on_complete:
			await self._request_feedback(request)

		if cfg.completion_mode == CompletionMode.SINGLE_GOAL:
			if goal_achieved:
				return AutonomousState.STOPPED_BY_GOAL_ACHIEVED, "Goal achieved"
			return AutonomousState.COMPLETED, "Single goal finished"
		return None, ""

	async def _handle_task_failure(self, request: Any, error: Exception) -> tuple[Optional[AutonomousState], str]:
		cfg = self.config
		self._last_error = str(error)
		logger.warning(f"Task {request.request_id} failed (continuing): {error}")
		self._emit(EventType.TASK_FAILED, f"Task failed (continuing): {error}", task_id=request.request_id)

		if self._execution_context is not None:
			self._execution_context = self._execution_context.with_error_resolution(ErrorResolution(
				iteration=self._iteration,
				error_summary=str(error),
				category=ErrorCategory.RUNTIME,
				resolution_applied="continue_on_failure enabled - skipping task",
				was_successful=False,
			))

		if self._gate.should_request(cfg, InterventionPoint.TASK_FAILED):
			approval = await self._gate.request_approval(
				cfg,
				InterventionPoint.TASK_FAILED,
				f"Task failed: {error}. Continue?",
				task_id=request.request_id,
				risk_level=RiskLevel.MEDIUM,
				cancel=self._cancel,
			)
			if approval.decision == ApprovalDecision.REJECTED:
				return AutonomousState.STOPPED_BY_USER, "Stopped after task failure by human"
		return None, ""

	async def _request_feedback(self, request: Any) -> None:
		entries = [entry for entry in self._history.values() if entry.completed_at is not None]
		if not entries:
			return
		latest = max(entries, key=lambda entry: entry.completed_at)
		feedback = await self._gate.request_feedback(
			HumanFeedbackRequest(
				original_prompt=request.prompt,
				execution_output=latest.execution_output,
				task_id=request.request_id,
				oracle_analysis=latest.oracle_verdict.analysis if latest.oracle_verdict else None,
			),
			cancel=self._cancel,
			timeout=self.config.approval_timeout_seconds,
		)
		if feedback is not None and self._execution_context is not None:
			self._execution_context = self._execution_context.with_human_feedback(feedback)

	async def _checkpoint_if_enabled(self) -> None:
		if self.config.enable_checkpointing:
			await self.create_checkpoint()

	async def create_checkpoint(self) -> ExecutionCheckpoint:
		"""Snapshot queue, history and config together and append the checkpoint."""
		checkpoint = ExecutionCheckpoint(
			session_id=self._session_id or short_id(),
			iteration_number=self._iteration,
			queue_snapshot=tuple(QueuedTask(request_id=r.request_id, prompt=r.prompt) for r in self._queue),
			history_snapshot=tuple(self.get_history()),
			config_snapshot=self.config,
			state=self._state,
		)
		self._checkpoints.append(checkpoint)
		self._emit(
			EventType.CHECKPOINT_CREATED,
			f"Checkpoint created at iteration {self._iteration}",
			data={"checkpoint_id": checkpoint.id},
		)

		if self.checkpoint_store is not None:
			try:
				await self.checkpoint_store.save(checkpoint)
			except Exception as e:
				logger.error(f"Failed to persist checkpoint {checkpoint.id}: {e}")
		return checkpoint

	# =========================================================================
	# Oracle loop
	# =========================================================================

	def _store_history(self, entry: ExecutionHistoryEntry) -> None:
		self._history[entry.id] = entry
		self._emit(
			EventType.HISTORY_ENTRY_ADDED,
			f"History entry added: {entry.id}",
			task_id=entry.task_id,
			oracle_iteration=entry.oracle_iteration,
			history_entry=entry,
		)

	def _oracle_active(self) -> bool:
		return self.config.enable_oracle and self.oracle is not None and self.oracle.is_configured

	async def _record_output(self, output: str, success: bool) -> None:
		if self._execution_context is not None:
			self._execution_context = self._execution_context.with_output(truncate(output, CONTEXT_OUTPUT_LIMIT))
		if output:
			await self.context.record_output(self._session_id, output, self._iteration, success)

	async def _run_task(self, request: Any) -> bool:
		"""
		Refine one task through the oracle loop.

		Returns:
			True if the oracle accepted an output with sufficient confidence
		"""
		cfg = self.config
		task_id = request.request_id
		self._current_task_id = task_id
		self._oracle_iteration = 0
		prompt = request.prompt
		goal_achieved = False

		if self._execution_context is not None:
			self._execution_context = self._execution_context.with_goal(request.prompt)

		self._emit(EventType.TASK_STARTED, f"Task started: {task_id}", task_id=task_id)

		def on_output(chunk: TaskOutput) -> None:
			self._emit(EventType.TASK_OUTPUT, chunk.content, task_id=task_id, oracle_iteration=self._oracle_iteration)

		while self._oracle_iteration < cfg.max_oracle_iterations:
			self._cancel.raise_if_cancelled()
			self._oracle_iteration += 1
			pass_number = self._oracle_iteration

			if self._execution_context is not None:
				self._execution_context = self._execution_context.with_oracle_iteration(pass_number)

			entry = ExecutionHistoryEntry(
				session_id=self._session_id,
				iteration_number=self._iteration,
				oracle_iteration=pass_number,
				task_id=task_id,
				execution_prompt=prompt,
			)
			current = request if pass_number == 1 else self.request_factory(f"{task_id}_{pass_number}", prompt)

			try:
				result = await self.executor.execute(current, on_output, self._cancel)
			except (OperationCancelledError, asyncio.CancelledError):
				raise
			except Exception as e:
				self._store_history(entry.model_copy(update={
					"success": False,
					"error_message": str(e),
					"completed_at": utcnow(),
				}))
				raise

			output = getattr(result, "output", "") or ""
			entry = entry.model_copy(update={
				"execution_output": output,
				"success": bool(getattr(result, "success", False)),
				"error_message": getattr(result, "error_output", None),
				"completed_at": utcnow(),
			})
			await self._record_output(output, entry.success)

			if not self._oracle_active():
				self._store_history(entry)
				break

			self._emit(
				EventType.ORACLE_VERIFYING,
				f"Oracle verifying (pass {pass_number})...",
				task_id=task_id,
				oracle_iteration=pass_number,
			)
			use_reflection = cfg.use_reflection
			try:
				oracle_prompt = self.oracle.build_verification_prompt(
					request.prompt, output, cfg.oracle_config, self._execution_context, use_reflection,
				)
				verdict = await self.oracle.verify(
					request.prompt, output, cfg.oracle_config, self._execution_context, self._cancel, use_reflection,
				)
			except (OperationCancelledError, asyncio.CancelledError):
				self._store_history(entry)
				raise
			except Exception as e:
				logger.error(f"Oracle verification failed: {e}")
				self._store_history(entry)
				self._emit(EventType.ORACLE_ERROR, f"Oracle error: {e}", task_id=task_id, oracle_iteration=pass_number)
				break

			entry = entry.model_copy(update={"oracle_prompt": oracle_prompt, "oracle_verdict": verdict})
			self._store_history(entry)
			self._emit(
				EventType.ORACLE_VERIFIED,
				f"Oracle verdict: complete={verdict.is_complete}, confidence={verdict.confidence:.0%}",
				task_id=task_id,
				verdict=verdict,
				oracle_iteration=pass_number,
			)

			if cfg.enable_reflection and verdict.reflection is not None and self._execution_context is not None:
				self._execution_context = (
					self._execution_context
					.with_learning(verdict.reflection.to_learning(self._iteration))
					.with_reflection(verdict.reflection.to_insight(verdict.analysis))
				)
				self._emit(
					EventType.REFLECTION_CAPTURED,
					f"Reflection: {verdict.reflection.lessons_learned or 'captured'}",
					task_id=task_id,
					oracle_iteration=pass_number,
				)

			if (
				verdict.confidence < cfg.human_review_confidence_threshold
				and self._gate.should_request(cfg, InterventionPoint.ORACLE_UNCERTAIN)
			):
				approval = await self._gate.request_approval(
					cfg,
					InterventionPoint.ORACLE_UNCERTAIN,
					f"Oracle uncertain (confidence: {verdict.confidence:.0%}). Analysis: {verdict.analysis}",
					task_id=task_id,
					details=truncate(output, 500),
					cancel=self._cancel,
				)
				if approval.feedback and self._execution_context is not None:
					self._execution_context = self._execution_context.with_human_feedback(HumanFeedback(
						request_id=approval.request_id,
						is_satisfactory=approval.is_approved,
						comments=approval.feedback,
					))
				if approval.decision == ApprovalDecision.REJECTED:
					break
				if approval.decision == ApprovalDecision.MODIFY_AND_APPROVE and approval.modified_action:
					prompt = approval.modified_action
					continue

			if verdict.is_complete and verdict.confidence >= cfg.min_confidence_threshold:
				goal_achieved = True
				self._emit(EventType.ORACLE_COMPLETE, "Goal achieved with sufficient confidence", task_id=task_id, verdict=verdict)
				break

			if not verdict.can_continue:
				self._emit(EventType.ORACLE_COMPLETE, "Oracle indicates cannot continue", task_id=task_id, verdict=verdict)
				break

			if verdict.next_prompt_suggestion and verdict.next_prompt_suggestion.strip():
				prompt = verdict.next_prompt_suggestion
				self._emit(
					EventType.ORACLE_RETRYING,
					f"Retrying with refined prompt: {truncate(prompt, 100)}",
					task_id=task_id,
					oracle_iteration=pass_number,
				)
				continue

			break

		self._emit(EventType.TASK_COMPLETED, f"Task completed: {task_id}", task_id=task_id)
		self._current_task_id = None
		return goal_achieved
