"""
Resilient Executor - retry with exponential backoff, then fall back.

Wraps any TaskExecutor without changing its interface:
- Up to max_retries attempts per request
- Delay between attempts of initial_delay * multiplier^(attempt-1), capped
- Cancellation aborts at once, with no retry and no fallback
- After exhaustion a fallback strategy may supply a result
- Otherwise ExecutionFailedError wraps the last underlying error
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..cancellation import CancellationSignal
from ..errors import ExecutionFailedError, OperationCancelledError
from .base import OutputCallback, TaskExecutor
from .fallback import FallbackContext, FallbackStrategy

logger = logging.getLogger(__name__)


class ResilienceSettings(BaseModel):
	"""Retry and fallback behaviour."""
	model_config = ConfigDict(frozen=True)

	max_retries: int = Field(default=3, ge=1, description="Total attempts, including the first")
	initial_delay_seconds: float = Field(default=0.5, ge=0)
	backoff_multiplier: float = Field(default=2.0, ge=1.0)
	max_delay_seconds: float = Field(default=10.0, ge=0)
	enable_fallback: bool = Field(default=True)

	def delay_for(self, attempt: int) -> float:
		"""Delay after a failed `attempt` (1-based), before the next one."""
		delay = self.initial_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
		return min(delay, self.max_delay_seconds)


@dataclass
class ResilienceEvent:
	"""Progress notice from the resilient executor."""
	kind: str
	request_id: str
	attempt: int = 0
	message: str = ""
	data: dict[str, Any] = field(default_factory=dict)


RETRY_ATTEMPT = "retry_attempt"
FALLBACK_TRIGGERED = "fallback_triggered"
FALLBACK_SUCCEEDED = "fallback_succeeded"
FALLBACK_FAILED = "fallback_failed"


def is_valid_result(result: Any) -> bool:
	if result is None or not getattr(result, "success", False):
		return False
	output = getattr(result, "output", "") or ""
	return bool(output.strip())


def _failure_message(result: Any) -> str:
	if result is None:
		return "Executor returned no result"
	error = getattr(result, "error_output", None)
	if error:
		return error
	if not getattr(result, "success", False):
		return "Executor reported failure"
	return "Executor returned empty output"


class ResilientExecutor:
	"""
	Retry/fallback decorator around a TaskExecutor.

	Usage:
		executor = ResilientExecutor(inner, ResilienceSettings(max_retries=3))
		result = await executor.execute(request, on_output, cancel)
	"""

	def __init__(
		self,
		inner: TaskExecutor,
		settings: Optional[ResilienceSettings] = None,
		fallback_strategy: Optional[FallbackStrategy] = None,
		on_event: Optional[Callable[[ResilienceEvent], None]] = None,
	):
		self.inner = inner
		self.settings = settings or ResilienceSettings()
		self.fallback_strategy = fallback_strategy
		self.on_event = on_event
		self._previous_outputs: list[str] = []

	@property
	def previous_outputs(self) -> tuple[str, ...]:
		return tuple(self._previous_outputs)

	def reset(self) -> None:
		"""Forget produced outputs and reset the fallback strategy."""
		self._previous_outputs.clear()
		if self.fallback_strategy:
			self.fallback_strategy.reset()

	def _emit(self, event: ResilienceEvent) -> None:
		if self.on_event is None:
			return
		try:
			self.on_event(event)
		except Exception as e:
			logger.error(f"Resilience event handler failed: {e}")

	async def _sleep(self, seconds: float, cancel: Optional[CancellationSignal]) -> None:
		if cancel is not None:
			await cancel.sleep(seconds)
		else:
			await asyncio.sleep(seconds)

	async def execute(
		self,
		request: Any,
		on_output: Optional[OutputCallback] = None,
		cancel: Optional[CancellationSignal] = None,
	) -> Any:
		"""
		Run the request with retries and fallback.

		Returns:
			The first valid result, or a valid fallback result

		Raises:
			OperationCancelledError: If cancellation is observed
			ExecutionFailedError: If every attempt and the fallback failed
		"""
		request_id = getattr(request, "request_id", "")
		attempts = self.settings.max_retries
		last_error: Optional[BaseException] = None
		last_message: Optional[str] = None

		for attempt in range(1, attempts + 1):
			if cancel is not None:
				cancel.raise_if_cancelled()

			try:
				result = await self.inner.execute(request, on_output, cancel)
			except (OperationCancelledError, asyncio.CancelledError):
				raise
			except Exception as e:
				last_error = e
				last_message = str(e) or type(e).__name__
				logger.warning(f"Attempt {attempt}/{attempts} for {request_id} raised: {last_message}")
			else:
				if is_valid_result(result):
					self._previous_outputs.append(result.output)
					return result
				last_message = _failure_message(result)
				last_error = ExecutionFailedError(last_message)
				logger.warning(f"Attempt {attempt}/{attempts} for {request_id} invalid: {last_message}")

			if attempt < attempts:
				delay = self.settings.delay_for(attempt)
				self._emit(ResilienceEvent(
					kind=RETRY_ATTEMPT,
					request_id=request_id,
					attempt=attempt + 1,
					message=f"Retrying in {delay:.2f}s after: {last_message}",
					data={"delay_seconds": delay},
				))
				await self._sleep(delay, cancel)

		# A cancel seen during the last attempt wins over fallback and failure
		if cancel is not None:
			cancel.raise_if_cancelled()

		if self.settings.enable_fallback and self.fallback_strategy is not None:
			result = await self._try_fallback(request, attempts, last_message, cancel)
			if result is not None:
				return result

		raise ExecutionFailedError(
			f"Execution failed after {attempts} retries",
			last_error=last_error,
		) from last_error

	async def _try_fallback(
		self,
		request: Any,
		attempts: int,
		last_message: Optional[str],
		cancel: Optional[CancellationSignal],
	) -> Optional[Any]:
		request_id = getattr(request, "request_id", "")
		context = FallbackContext(
			failed_request=request,
			iteration=len(self._previous_outputs) + 1,
			retry_attempts=attempts,
			error_message=last_message,
			previous_outputs=tuple(self._previous_outputs),
			metadata=dict(getattr(request, "metadata", {}) or {}),
		)
		if not self.fallback_strategy.can_provide_fallback(context):
			logger.info(f"No fallback available for {request_id}")
			return None

		if cancel is not None:
			cancel.raise_if_cancelled()

		self._emit(ResilienceEvent(kind=FALLBACK_TRIGGERED, request_id=request_id, attempt=attempts))
		result = await self.fallback_strategy.get_fallback(context)
		if is_valid_result(result):
			self._previous_outputs.append(result.output)
			self._emit(ResilienceEvent(
				kind=FALLBACK_SUCCEEDED,
				request_id=request_id,
				attempt=attempts,
				message=result.output[:100],
			))
			return result

		self._emit(ResilienceEvent(kind=FALLBACK_FAILED, request_id=request_id, attempt=attempts))
		return None
