"""
Human-in-the-loop models.

Defines the request/response pairs exchanged with a human reviewer:
- Approval requests raised at intervention points
- Feedback requests raised after a task completes
- Notifications that need no answer
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class InterventionPoint(str, Enum):
	"""Points in the execution flow where a human can be asked to intervene."""
	BEFORE_TASK_START = "before_task_start"
	AFTER_TASK_COMPLETE = "after_task_complete"
	ORACLE_UNCERTAIN = "oracle_uncertain"
	TASK_FAILED = "task_failed"
	HIGH_RISK_ACTION = "high_risk_action"
	EXTERNAL_MODIFICATION = "external_modification"
	MAX_ITERATIONS_APPROACHING = "max_iterations_approaching"
	BEFORE_CHECKPOINT_RESTORE = "before_checkpoint_restore"
	CUSTOM = "custom"


class ApprovalDecision(str, Enum):
	"""A reviewer's answer to an approval request."""
	APPROVED = "approved"
	REJECTED = "rejected"
	MODIFY_AND_APPROVE = "modify_and_approve"


class RiskLevel(str, Enum):
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	CRITICAL = "critical"


class FeedbackType(str, Enum):
	"""What kind of feedback is being asked for."""
	OUTPUT_QUALITY = "output_quality"
	CORRECTNESS = "correctness"
	GOAL_ACHIEVEMENT = "goal_achievement"
	GENERAL = "general"


class NotificationLevel(str, Enum):
	INFO = "info"
	WARNING = "warning"
	ERROR = "error"
	SUCCESS = "success"


class HumanApprovalRequest(BaseModel):
	"""A request for a human to approve continuing at an intervention point."""
	model_config = ConfigDict(frozen=True)

	request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
	intervention_point: InterventionPoint
	summary: str = Field(description="Short description of what needs approval")
	details: Optional[str] = Field(default=None)
	task_id: Optional[str] = Field(default=None)
	suggested_action: Optional[str] = Field(default=None)
	risk_level: RiskLevel = Field(default=RiskLevel.LOW)
	created_at: datetime = Field(default_factory=_utcnow)


class HumanApproval(BaseModel):
	"""A reviewer's response to an approval request."""
	model_config = ConfigDict(frozen=True)

	request_id: str
	decision: ApprovalDecision
	feedback: Optional[str] = Field(default=None, description="Free-form reviewer notes")
	modified_action: Optional[str] = Field(default=None, description="Replacement prompt for modify_and_approve")
	responded_at: datetime = Field(default_factory=_utcnow)
	timed_out: bool = Field(default=False)

	@property
	def is_approved(self) -> bool:
		return self.decision in (ApprovalDecision.APPROVED, ApprovalDecision.MODIFY_AND_APPROVE)

	@classmethod
	def approve(cls, request_id: str, feedback: Optional[str] = None) -> "HumanApproval":
		return cls(request_id=request_id, decision=ApprovalDecision.APPROVED, feedback=feedback)

	@classmethod
	def reject(cls, request_id: str, feedback: Optional[str] = None) -> "HumanApproval":
		return cls(request_id=request_id, decision=ApprovalDecision.REJECTED, feedback=feedback)

	@classmethod
	def modify(cls, request_id: str, modified_action: str, feedback: Optional[str] = None) -> "HumanApproval":
		return cls(
			request_id=request_id,
			decision=ApprovalDecision.MODIFY_AND_APPROVE,
			modified_action=modified_action,
			feedback=feedback,
		)

	@classmethod
	def auto_approve(cls, request_id: str) -> "HumanApproval":
		return cls(
			request_id=request_id,
			decision=ApprovalDecision.APPROVED,
			feedback="Auto-approved on timeout",
			timed_out=True,
		)


class HumanFeedbackRequest(BaseModel):
	"""A request for a human to judge a completed task."""
	model_config = ConfigDict(frozen=True)

	request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
	feedback_type: FeedbackType = Field(default=FeedbackType.OUTPUT_QUALITY)
	original_prompt: str
	execution_output: str
	task_id: Optional[str] = Field(default=None)
	oracle_analysis: Optional[str] = Field(default=None)
	created_at: datetime = Field(default_factory=_utcnow)


class HumanFeedback(BaseModel):
	"""A reviewer's judgement of a completed task."""
	model_config = ConfigDict(frozen=True)

	request_id: str
	is_satisfactory: bool
	rating: Optional[int] = Field(default=None, ge=1, le=5)
	comments: Optional[str] = Field(default=None)
	suggested_corrections: Optional[str] = Field(default=None)
	should_retry: bool = Field(default=False)
	modified_prompt: Optional[str] = Field(default=None)
	responded_at: datetime = Field(default_factory=_utcnow)


class HumanNotification(BaseModel):
	"""A one-way message to the reviewer."""
	model_config = ConfigDict(frozen=True)

	title: str
	message: str
	level: NotificationLevel = Field(default=NotificationLevel.INFO)
	task_id: Optional[str] = Field(default=None)
	created_at: datetime = Field(default_factory=_utcnow)


@runtime_checkable
class HumanInTheLoop(Protocol):
	"""Contract for anything that can answer approval and feedback requests."""

	@property
	def is_available(self) -> bool: ...

	async def request_approval(self, request: HumanApprovalRequest, cancel: Any = None) -> HumanApproval: ...

	async def request_feedback(self, request: HumanFeedbackRequest, cancel: Any = None) -> HumanFeedback: ...

	async def notify(self, notification: HumanNotification) -> None: ...
