"""oracle-orchestrator - autonomous task execution with oracle verification."""

from .cancellation import CancellationSignal
from .errors import (
	CheckpointNotFoundError,
	ConfigurationError,
	ExecutionFailedError,
	InvalidStateError,
	OperationCancelledError,
	OrchestratorError,
)
from .events import AutonomousEvent, EventBus, EventType
from .models import (
	AutonomousConfig,
	AutonomousState,
	AutonomousStatus,
	CompletionMode,
	ExecutionCheckpoint,
	ExecutionContext,
	ExecutionHistoryEntry,
	OracleConfig,
	OracleReflection,
	OracleVerdict,
)
from .orchestrator import AutonomousOrchestrator, SqliteCheckpointStore

__version__ = "0.1.0"

__all__ = [
	"AutonomousConfig",
	"AutonomousEvent",
	"AutonomousOrchestrator",
	"AutonomousState",
	"AutonomousStatus",
	"CancellationSignal",
	"CheckpointNotFoundError",
	"CompletionMode",
	"ConfigurationError",
	"EventBus",
	"EventType",
	"ExecutionCheckpoint",
	"ExecutionContext",
	"ExecutionFailedError",
	"ExecutionHistoryEntry",
	"InvalidStateError",
	"OperationCancelledError",
	"OracleConfig",
	"OracleReflection",
	"OracleVerdict",
	"OrchestratorError",
	"SqliteCheckpointStore",
	"__version__",
]
