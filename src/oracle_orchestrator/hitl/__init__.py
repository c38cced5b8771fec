"""Human-in-the-loop requests, responses and reviewer front ends."""

from .channel import HumanInTheLoopChannel
from .console import ConsoleHumanInTheLoop
from .models import (
	ApprovalDecision,
	FeedbackType,
	HumanApproval,
	HumanApprovalRequest,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanInTheLoop,
	HumanNotification,
	InterventionPoint,
	NotificationLevel,
	RiskLevel,
)

__all__ = [
	"ApprovalDecision",
	"ConsoleHumanInTheLoop",
	"FeedbackType",
	"HumanApproval",
	"HumanApprovalRequest",
	"HumanFeedback",
	"HumanFeedbackRequest",
	"HumanInTheLoop",
	"HumanInTheLoopChannel",
	"HumanNotification",
	"InterventionPoint",
	"NotificationLevel",
	"RiskLevel",
]
