"""
Approval gate - the engine's side of the human-in-the-loop rendezvous.

Responsibilities:
- Decide whether an intervention point needs a human
- Emit requested/received/timeout events around each request
- Apply the approval timeout and the auto-approve policy
- Keep feedback requests best-effort
"""

import asyncio
import logging
from typing import Callable, Optional

from ..cancellation import CancellationSignal
from ..errors import OperationCancelledError
from ..events import EventType
from ..hitl.models import (
	HumanApproval,
	HumanApprovalRequest,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanInTheLoop,
	HumanNotification,
	InterventionPoint,
	RiskLevel,
)
from ..models import AutonomousConfig, short_id

logger = logging.getLogger(__name__)

Emit = Callable[..., None]


class ApprovalGate:
	"""Wraps a HumanInTheLoop provider with the engine's timeout and event policy."""

	def __init__(self, provider: Optional[HumanInTheLoop], emit: Emit):
		self.provider = provider
		self._emit = emit

	def should_request(self, config: AutonomousConfig, point: InterventionPoint) -> bool:
		if not config.requires_approval(point):
			return False
		return self.provider is not None and self.provider.is_available

	async def request_approval(
		self,
		config: AutonomousConfig,
		point: InterventionPoint,
		summary: str,
		task_id: Optional[str] = None,
		details: Optional[str] = None,
		risk_level: RiskLevel = RiskLevel.LOW,
		cancel: Optional[CancellationSignal] = None,
	) -> HumanApproval:
		"""
		Ask for approval and wait for the answer or the timeout.

		Returns:
			The reviewer's answer, or a synthesized approval on timeout when
			auto_approve_on_timeout is set

		Raises:
			OperationCancelledError: On cancellation, or on timeout without auto-approve
		"""
		if self.provider is None:
			return HumanApproval.approve(short_id(), feedback="No reviewer configured")

		request = HumanApprovalRequest(
			intervention_point=point,
			summary=summary,
			details=details,
			task_id=task_id,
			risk_level=risk_level,
		)
		self._emit(
			EventType.HUMAN_APPROVAL_REQUESTED,
			f"Approval requested: {summary}",
			task_id=task_id,
			data={"request_id": request.request_id, "intervention_point": point.value},
		)

		try:
			approval = await asyncio.wait_for(
				self.provider.request_approval(request, cancel),
				timeout=config.approval_timeout_seconds,
			)
		except asyncio.TimeoutError:
			if not config.auto_approve_on_timeout:
				raise OperationCancelledError(f"Approval timed out at {point.value}")
			self._emit(
				EventType.HUMAN_APPROVAL_TIMEOUT,
				"Approval timeout - auto-approving",
				task_id=task_id,
				data={"request_id": request.request_id},
			)
			return HumanApproval.auto_approve(request.request_id)

		self._emit(
			EventType.HUMAN_APPROVAL_RECEIVED,
			f"Approval received: {approval.decision.value}",
			task_id=task_id,
			data={"request_id": request.request_id, "decision": approval.decision.value},
		)
		return approval

	async def request_feedback(
		self,
		request: HumanFeedbackRequest,
		cancel: Optional[CancellationSignal] = None,
		timeout: Optional[float] = None,
	) -> Optional[HumanFeedback]:
		"""Ask for feedback. Failures and timeouts are logged and yield None."""
		if self.provider is None or not self.provider.is_available:
			return None

		self._emit(EventType.HUMAN_FEEDBACK_REQUESTED, "Feedback requested", task_id=request.task_id)
		try:
			feedback = await asyncio.wait_for(self.provider.request_feedback(request, cancel), timeout=timeout)
		except OperationCancelledError:
			raise
		except Exception as e:
			logger.warning(f"Failed to get human feedback: {e!r}")
			return None

		self._emit(
			EventType.HUMAN_FEEDBACK_RECEIVED,
			f"Feedback received: satisfactory={feedback.is_satisfactory}",
			task_id=request.task_id,
		)
		return feedback

	async def notify(self, config: AutonomousConfig, notification: HumanNotification) -> None:
		"""Send a one-way message to the reviewer. Failures are logged only."""
		if not config.enable_human_in_the_loop or self.provider is None or not self.provider.is_available:
			return
		try:
			await self.provider.notify(notification)
		except Exception as e:
			logger.warning(f"Failed to notify reviewer: {e!r}")
