"""Context, memory and saturation tracking."""

from .manager import ContextManager
from .memory import (
	InMemoryMemoryStore,
	MemoryFilter,
	MemoryStatistics,
	MemoryStore,
	MemoryTier,
	MemoryType,
	MemoryUnit,
	MemoryUpdate,
	SqliteMemoryStore,
)
from .provider import ContextItem, ContextProvider
from .saturation import (
	SaturationAction,
	SaturationActionRequest,
	SaturationChange,
	SaturationConfig,
	SaturationLevel,
	SaturationMonitor,
	SaturationState,
)
from .tokens import estimate_tokens

__all__ = [
	"ContextItem",
	"ContextManager",
	"ContextProvider",
	"InMemoryMemoryStore",
	"MemoryFilter",
	"MemoryStatistics",
	"MemoryStore",
	"MemoryTier",
	"MemoryType",
	"MemoryUnit",
	"MemoryUpdate",
	"SaturationAction",
	"SaturationActionRequest",
	"SaturationChange",
	"SaturationConfig",
	"SaturationLevel",
	"SaturationMonitor",
	"SaturationState",
	"SqliteMemoryStore",
	"estimate_tokens",
]
