"""Autonomous orchestrator, approval gate and checkpoint persistence."""

from .approvals import ApprovalGate
from .checkpoints import SqliteCheckpointStore
from .engine import AutonomousOrchestrator

__all__ = [
	"ApprovalGate",
	"AutonomousOrchestrator",
	"SqliteCheckpointStore",
]
