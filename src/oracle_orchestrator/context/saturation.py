"""
Saturation Monitor - token budget accounting for the working context.

Features:
- Per-source usage accumulation
- Level classification against configurable thresholds
- Change notifications only on level transitions
- Action requests with a suggested number of tokens to free
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class SaturationLevel(str, Enum):
	"""How full the context budget is, in increasing order."""
	NORMAL = "normal"
	ELEVATED = "elevated"
	HIGH = "high"
	CRITICAL = "critical"
	OVERFLOW = "overflow"


class SaturationAction(str, Enum):
	"""What the owner of the context should do about its size."""
	NONE = "none"
	CONSIDER_SUMMARIZATION = "consider_summarization"
	SHOULD_PAGE_OUT = "should_page_out"
	MUST_EVICT = "must_evict"
	EMERGENCY = "emergency"


LEVEL_ACTIONS = {
	SaturationLevel.NORMAL: SaturationAction.NONE,
	SaturationLevel.ELEVATED: SaturationAction.CONSIDER_SUMMARIZATION,
	SaturationLevel.HIGH: SaturationAction.SHOULD_PAGE_OUT,
	SaturationLevel.CRITICAL: SaturationAction.MUST_EVICT,
	SaturationLevel.OVERFLOW: SaturationAction.EMERGENCY,
}


class SaturationConfig(BaseModel):
	"""Thresholds are percentages of max_tokens."""
	model_config = ConfigDict(frozen=True)

	max_tokens: int = Field(default=128000, gt=0)
	elevated_threshold: float = Field(default=60.0, ge=0, le=100)
	high_threshold: float = Field(default=75.0, ge=0, le=100)
	critical_threshold: float = Field(default=85.0, ge=0, le=100)
	overflow_threshold: float = Field(default=95.0, ge=0, le=100)
	target_after_eviction: float = Field(default=50.0, ge=0, le=100)
	auto_trigger_actions: bool = Field(default=True)

	@model_validator(mode="after")
	def _check_order(self) -> "SaturationConfig":
		if not (self.elevated_threshold <= self.high_threshold <= self.critical_threshold <= self.overflow_threshold):
			raise ValueError("saturation thresholds must be non-decreasing")
		return self


@dataclass
class SaturationState:
	"""Snapshot of context usage."""
	level: SaturationLevel
	percentage: float
	current_tokens: int
	max_tokens: int
	usage_by_source: dict[str, int] = field(default_factory=dict)
	recommended_action: SaturationAction = SaturationAction.NONE
	last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	@property
	def available_tokens(self) -> int:
		return max(0, self.max_tokens - self.current_tokens)


@dataclass
class SaturationChange:
	previous_level: SaturationLevel
	new_level: SaturationLevel
	state: SaturationState


@dataclass
class SaturationActionRequest:
	action: SaturationAction
	state: SaturationState
	suggested_tokens_to_free: int
	reason: str


class SaturationMonitor:
	"""
	Tracks token usage against a budget and signals when action is needed.

	Usage:
		monitor = SaturationMonitor()
		monitor.on_level_changed(lambda change: ...)
		monitor.on_action_required(lambda request: ...)
		monitor.record_usage(1200, "context")
	"""

	def __init__(self, config: Optional[SaturationConfig] = None):
		self.config = config or SaturationConfig()
		self._usage: dict[str, int] = {}
		self._level = SaturationLevel.NORMAL
		self._last_updated = datetime.now(timezone.utc)
		self._level_handlers: list[Callable[[SaturationChange], None]] = []
		self._action_handlers: list[Callable[[SaturationActionRequest], None]] = []

	def on_level_changed(self, handler: Callable[[SaturationChange], None]) -> None:
		self._level_handlers.append(handler)

	def on_action_required(self, handler: Callable[[SaturationActionRequest], None]) -> None:
		self._action_handlers.append(handler)

	@property
	def current_tokens(self) -> int:
		return sum(self._usage.values())

	@property
	def level(self) -> SaturationLevel:
		return self._level

	def classify(self, percentage: float) -> SaturationLevel:
		"""Return the highest level whose threshold the percentage has reached."""
		c = self.config
		if percentage >= c.overflow_threshold:
			return SaturationLevel.OVERFLOW
		if percentage >= c.critical_threshold:
			return SaturationLevel.CRITICAL
		if percentage >= c.high_threshold:
			return SaturationLevel.HIGH
		if percentage >= c.elevated_threshold:
			return SaturationLevel.ELEVATED
		return SaturationLevel.NORMAL

	def get_state(self) -> SaturationState:
		total = self.current_tokens
		percentage = total / self.config.max_tokens * 100
		level = self.classify(percentage)
		return SaturationState(
			level=level,
			percentage=percentage,
			current_tokens=total,
			max_tokens=self.config.max_tokens,
			usage_by_source=dict(self._usage),
			recommended_action=LEVEL_ACTIONS[level],
			last_updated=self._last_updated,
		)

	def record_usage(self, tokens: int, source: str = "unknown") -> SaturationState:
		"""Add token usage for a source and fire notifications as needed."""
		if tokens < 0:
			raise ValueError("tokens must be non-negative")

		self._usage[source] = self._usage.get(source, 0) + tokens
		self._last_updated = datetime.now(timezone.utc)
		state = self.get_state()

		previous = self._level
		self._level = state.level
		if state.level != previous:
			logger.info(f"Context saturation {previous.value} -> {state.level.value} ({state.percentage:.1f}%)")
			change = SaturationChange(previous_level=previous, new_level=state.level, state=state)
			for handler in list(self._level_handlers):
				try:
					handler(change)
				except Exception as e:
					logger.error(f"Saturation level handler failed: {e}")

		if self.config.auto_trigger_actions and state.recommended_action != SaturationAction.NONE:
			target = self.config.max_tokens * self.config.target_after_eviction / 100
			request = SaturationActionRequest(
				action=state.recommended_action,
				state=state,
				suggested_tokens_to_free=max(0, int(state.current_tokens - target)),
				reason=f"Saturation at {state.percentage:.1f}% ({state.level.value})",
			)
			for handler in list(self._action_handlers):
				try:
					handler(request)
				except Exception as e:
					logger.error(f"Saturation action handler failed: {e}")

		return state

	def reset_iteration(self) -> None:
		"""Zero all counters. Does not fire a level-change notification."""
		self._usage.clear()
		self._level = SaturationLevel.NORMAL
		self._last_updated = datetime.now(timezone.utc)
