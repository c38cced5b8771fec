"""Task executors and the resilience decorator."""

from .base import (
	OutputCallback,
	RequestFactory,
	TaskExecutor,
	TaskOutput,
	TaskRequest,
	TaskResult,
	default_request_factory,
)
from .command import CommandTaskExecutor
from .fallback import (
	FallbackContext,
	FallbackStrategy,
	ListFallbackStrategy,
	NoOpFallbackStrategy,
	StringListFallbackStrategy,
)
from .resilient import ResilienceEvent, ResilienceSettings, ResilientExecutor

__all__ = [
	"CommandTaskExecutor",
	"FallbackContext",
	"FallbackStrategy",
	"ListFallbackStrategy",
	"NoOpFallbackStrategy",
	"OutputCallback",
	"RequestFactory",
	"ResilienceEvent",
	"ResilienceSettings",
	"ResilientExecutor",
	"StringListFallbackStrategy",
	"TaskExecutor",
	"TaskOutput",
	"TaskRequest",
	"TaskResult",
	"default_request_factory",
]
