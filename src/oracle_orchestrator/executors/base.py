"""Executor contract: requests, results, and streamed partial output."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from ..cancellation import CancellationSignal


@dataclass(frozen=True)
class TaskRequest:
	"""A unit of work handed to an executor."""
	request_id: str
	prompt: str
	metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskResult:
	"""What an executor produced for a request."""
	request_id: str
	success: bool
	output: str = ""
	error_output: Optional[str] = None
	metadata: dict[str, Any] = field(default_factory=dict)

	@property
	def is_valid(self) -> bool:
		"""Successful and with non-blank output."""
		return self.success and bool(self.output and self.output.strip())


@dataclass(frozen=True)
class TaskOutput:
	"""A chunk of output streamed while a task is running."""
	request_id: str
	content: str
	is_error: bool = False
	timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


OutputCallback = Callable[[TaskOutput], None]
RequestFactory = Callable[[str, str], Any]


def default_request_factory(request_id: str, prompt: str) -> TaskRequest:
	return TaskRequest(request_id=request_id, prompt=prompt)


@runtime_checkable
class TaskExecutor(Protocol):
	"""Anything that can run a request to completion."""

	async def execute(
		self,
		request: Any,
		on_output: Optional[OutputCallback] = None,
		cancel: Optional[CancellationSignal] = None,
	) -> Any: ...
