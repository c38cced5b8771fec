"""
Fallback strategies - last-resort results once retries are exhausted.

A strategy never hands out a value whose concepts overlap anything it has
already handed out or anything the executor already produced, and reports
that it cannot help once its values are used up.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from .base import TaskRequest, TaskResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FallbackContext:
	"""Everything a strategy knows about the failure it is covering for."""
	failed_request: Any
	iteration: int
	retry_attempts: int
	error_message: Optional[str] = None
	previous_outputs: tuple[str, ...] = ()
	metadata: dict[str, Any] = field(default_factory=dict)


class FallbackStrategy(ABC):
	"""Base class for fallback strategies."""

	@abstractmethod
	def can_provide_fallback(self, context: FallbackContext) -> bool:
		...

	@abstractmethod
	async def get_fallback(self, context: FallbackContext) -> Optional[Any]:
		...

	def reset(self) -> None:
		pass


class NoOpFallbackStrategy(FallbackStrategy):
	"""Never helps."""

	def can_provide_fallback(self, context: FallbackContext) -> bool:
		return False

	async def get_fallback(self, context: FallbackContext) -> Optional[Any]:
		return None


class ListFallbackStrategy(FallbackStrategy):
	"""
	Hands out values from a fixed list, skipping anything already seen.

	Subclasses provide the values and how to turn one into a result, and may
	override extract_concepts() to treat related values as duplicates.
	"""

	def __init__(self):
		self._used: list[str] = []

	@property
	@abstractmethod
	def fallback_values(self) -> Sequence[str]:
		...

	@abstractmethod
	def create_result(self, request: Any, value: str, context: FallbackContext) -> Any:
		...

	def extract_concepts(self, value: str) -> set[str]:
		return {value.strip().lower()}

	def _next_unused(self, context: FallbackContext) -> Optional[str]:
		seen: set[str] = set()
		for value in list(self._used) + list(context.previous_outputs):
			seen |= self.extract_concepts(value)

		for value in self.fallback_values:
			if not (self.extract_concepts(value) & seen):
				return value
		return None

	def can_provide_fallback(self, context: FallbackContext) -> bool:
		return self._next_unused(context) is not None

	async def get_fallback(self, context: FallbackContext) -> Optional[Any]:
		value = self._next_unused(context)
		if value is None:
			logger.debug("Fallback list exhausted")
			return None
		self._used.append(value)
		return self.create_result(context.failed_request, value, context)

	@property
	def used_values(self) -> list[str]:
		return list(self._used)

	def reset(self) -> None:
		self._used.clear()


def _string_result(request: Any, value: str) -> TaskResult:
	return TaskResult(
		request_id=getattr(request, "request_id", ""),
		success=True,
		output=value,
		metadata={"fallback": True},
	)


class StringListFallbackStrategy(ListFallbackStrategy):
	"""List strategy over plain strings."""

	def __init__(
		self,
		values: Sequence[str],
		result_factory: Optional[Callable[[Any, str], Any]] = None,
	):
		super().__init__()
		self._values = list(values)
		self._result_factory = result_factory or _string_result

	@property
	def fallback_values(self) -> Sequence[str]:
		return self._values

	def create_result(self, request: TaskRequest, value: str, context: FallbackContext) -> Any:
		return self._result_factory(request, value)
