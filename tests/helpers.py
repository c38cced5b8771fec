"""Shared fakes for oracle-orchestrator tests."""

import asyncio
from typing import Callable, Optional, Sequence, Union

from oracle_orchestrator.cancellation import CancellationSignal
from oracle_orchestrator.events import AutonomousEvent, EventType
from oracle_orchestrator.executors.base import TaskOutput, TaskResult
from oracle_orchestrator.hitl.models import (
	HumanApproval,
	HumanApprovalRequest,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanNotification,
)
from oracle_orchestrator.models import ExecutionContext, OracleConfig, OracleVerdict
from oracle_orchestrator.oracle.base import BaseOracleVerifier


class ScriptedExecutor:
	"""Returns canned outputs in order; the last one repeats once the script runs out."""

	def __init__(self, outputs: Union[Sequence[str], Callable[[object], str]] = ("done",)):
		self.outputs = outputs
		self.requests: list = []

	@property
	def call_count(self) -> int:
		return len(self.requests)

	async def execute(self, request, on_output=None, cancel: Optional[CancellationSignal] = None):
		if cancel is not None:
			cancel.raise_if_cancelled()
		self.requests.append(request)
		if callable(self.outputs):
			output = self.outputs(request)
		else:
			output = self.outputs[min(len(self.requests), len(self.outputs)) - 1]
		if on_output is not None:
			for line in output.splitlines():
				on_output(TaskOutput(request_id=request.request_id, content=line))
		return TaskResult(request_id=request.request_id, success=True, output=output)


class FailingExecutor:
	"""Raises on every call."""

	def __init__(self, error: Exception | None = None):
		self.error = error or RuntimeError("executor exploded")
		self.call_count = 0

	async def execute(self, request, on_output=None, cancel=None):
		self.call_count += 1
		raise self.error


class ScriptedOracle(BaseOracleVerifier):
	"""Returns canned verdicts in order; the last one repeats."""

	def __init__(self, verdicts: Sequence[OracleVerdict]):
		self.verdicts = list(verdicts)
		self.calls: list[tuple[str, str]] = []
		self.contexts: list[Optional[ExecutionContext]] = []

	async def verify(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		cancel: Optional[CancellationSignal] = None,
		use_reflection: bool = True,
	) -> OracleVerdict:
		self.calls.append((original_prompt, execution_output))
		self.contexts.append(context)
		return self.verdicts[min(len(self.calls), len(self.verdicts)) - 1]


class BrokenOracle(BaseOracleVerifier):
	"""Raises on every verification."""

	async def verify(self, original_prompt, execution_output, config, context=None, cancel=None, use_reflection=True):
		raise RuntimeError("oracle offline")


class ScriptedReviewer:
	"""
	HumanInTheLoop fake.

	Args:
		decide: Maps a request to an approval; defaults to approving everything
		feedback: Answer for feedback requests
		hang: Never answer approvals (exercise timeouts)
	"""

	def __init__(
		self,
		decide: Optional[Callable[[HumanApprovalRequest], HumanApproval]] = None,
		feedback: Optional[HumanFeedback] = None,
		hang: bool = False,
		available: bool = True,
	):
		self.decide = decide or (lambda request: HumanApproval.approve(request.request_id))
		self.feedback = feedback
		self.hang = hang
		self.available = available
		self.approval_requests: list[HumanApprovalRequest] = []
		self.feedback_requests: list[HumanFeedbackRequest] = []
		self.notifications: list[HumanNotification] = []

	@property
	def is_available(self) -> bool:
		return self.available

	async def request_approval(self, request, cancel=None):
		self.approval_requests.append(request)
		if self.hang:
			# Parked until the caller times out
			await asyncio.Event().wait()
		return self.decide(request)

	async def request_feedback(self, request, cancel=None):
		self.feedback_requests.append(request)
		if self.feedback is None:
			raise RuntimeError("no feedback scripted")
		return self.feedback.model_copy(update={"request_id": request.request_id})

	async def notify(self, notification):
		self.notifications.append(notification)


class EventRecorder:
	"""Subscriber that keeps every event."""

	def __init__(self):
		self.events: list[AutonomousEvent] = []

	def __call__(self, event: AutonomousEvent) -> None:
		self.events.append(event)

	@property
	def types(self) -> list[EventType]:
		return [event.type for event in self.events]

	def of(self, event_type: EventType) -> list[AutonomousEvent]:
		return [event for event in self.events if event.type == event_type]
