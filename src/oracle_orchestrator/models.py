"""
Core models - Pydantic schemas for configuration, verdicts, history and checkpoints.

Everything here is immutable once built. State changes produce a new value
(ExecutionContext.with_* methods, model_copy) rather than patching in place.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .hitl.models import HumanFeedback, InterventionPoint


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def short_id() -> str:
	return uuid.uuid4().hex[:8]


def truncate(text: str, limit: int) -> str:
	"""Cut text to `limit` characters, marking the cut with an ellipsis."""
	if len(text) <= limit:
		return text
	return text[:limit] + "..."


# =============================================================================
# Enums
# =============================================================================


class AutonomousState(str, Enum):
	"""Lifecycle state of an orchestrator."""
	IDLE = "idle"
	RUNNING = "running"
	PAUSED = "paused"
	COMPLETED = "completed"
	STOPPED_BY_USER = "stopped_by_user"
	STOPPED_BY_ERROR = "stopped_by_error"
	STOPPED_BY_MAX_ITERATIONS = "stopped_by_max_iterations"
	STOPPED_BY_GOAL_ACHIEVED = "stopped_by_goal_achieved"

	@property
	def is_terminal(self) -> bool:
		return self not in (AutonomousState.IDLE, AutonomousState.RUNNING, AutonomousState.PAUSED)


class CompletionMode(str, Enum):
	"""When the main loop considers its work finished."""
	UNTIL_QUEUE_EMPTY = "until_queue_empty"
	SINGLE_GOAL = "single_goal"
	UNTIL_GOAL_ACHIEVED = "until_goal_achieved"


class LearningType(str, Enum):
	SUCCESS = "success"
	FAILURE = "failure"
	PATTERN = "pattern"
	ERROR_RESOLUTION = "error_resolution"
	OPTIMIZATION = "optimization"
	HUMAN_FEEDBACK = "human_feedback"


class ReflectionType(str, Enum):
	CRITIQUE = "critique"
	STRATEGY = "strategy"
	ROOT_CAUSE = "root_cause"
	IMPROVEMENT = "improvement"


class ErrorCategory(str, Enum):
	RUNTIME = "runtime"
	TIMEOUT = "timeout"
	VALIDATION = "validation"
	ORACLE = "oracle"
	UNKNOWN = "unknown"


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_ORACLE_SYSTEM_PROMPT = """You verify the results of automated task execution and decide whether the goal was reached.

Reply with a single JSON object and nothing else:
{
	"is_complete": boolean,
	"can_continue": boolean,
	"analysis": "short assessment of what was done and what is missing",
	"next_prompt_suggestion": "a concrete follow-up prompt, or null when complete",
	"confidence": number between 0.0 and 1.0
}
"""

DEFAULT_ORACLE_USER_TEMPLATE = """## Original Goal/Task:
{original_prompt}

## Execution Output:
{execution_output}

Analyze whether the original goal has been achieved based on the execution output.
"""

DEFAULT_REFLECTION_SYSTEM_PROMPT = """You verify the results of automated task execution and reflect on the approach taken.

Reply with a single JSON object and nothing else:
{
	"is_complete": boolean,
	"can_continue": boolean,
	"analysis": "short assessment of what was done and what is missing",
	"next_prompt_suggestion": "a refined follow-up prompt, or null when complete",
	"confidence": number between 0.0 and 1.0,
	"reflection": {
		"what_worked_well": "effective parts of the approach",
		"what_could_improve": "specific gaps",
		"lessons_learned": "insights to carry into the next attempt",
		"suggested_strategy": "approach for the next attempt"
	}
}
"""

DEFAULT_REFLECTION_USER_TEMPLATE = """## Original Goal/Task:
{original_prompt}

## Execution Context:
{context}

## Current Execution Output:
{execution_output}

Analyze the execution output against the original goal, taking previous attempts and feedback into account.
Provide both a verdict and reflection insights.
"""


class OracleConfig(BaseModel):
	"""Settings handed to the oracle on every verification call."""
	model_config = ConfigDict(frozen=True)

	model: str = Field(default="gpt-4o-mini", description="Model name used by LLM-backed oracles")
	max_tokens: int = Field(default=1024, gt=0)
	temperature: float = Field(default=0.3, ge=0.0, le=2.0)
	timeout_seconds: float = Field(default=30.0, gt=0)
	system_prompt: str = Field(default=DEFAULT_ORACLE_SYSTEM_PROMPT)
	user_prompt_template: str = Field(default=DEFAULT_ORACLE_USER_TEMPLATE)
	enable_reflection: bool = Field(default=True)
	reflection_system_prompt: str = Field(default=DEFAULT_REFLECTION_SYSTEM_PROMPT)
	reflection_user_prompt_template: str = Field(default=DEFAULT_REFLECTION_USER_TEMPLATE)


class AutonomousConfig(BaseModel):
	"""Behaviour of a single orchestrator run."""
	model_config = ConfigDict(frozen=True)

	# Iteration
	max_iterations: int = Field(default=10, ge=1, description="Upper bound on outer-loop iterations")
	completion_mode: CompletionMode = Field(default=CompletionMode.UNTIL_QUEUE_EMPTY)
	continue_on_failure: bool = Field(default=False)
	enable_checkpointing: bool = Field(default=True)
	queue_poll_interval_seconds: float = Field(default=0.5, ge=0)

	# Oracle
	enable_oracle: bool = Field(default=True)
	max_oracle_iterations: int = Field(default=5, ge=1)
	min_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
	oracle_config: OracleConfig = Field(default_factory=OracleConfig)

	# Human in the loop
	enable_human_in_the_loop: bool = Field(default=False)
	required_approval_points: list[InterventionPoint] = Field(default_factory=list)
	approval_timeout_seconds: Optional[float] = Field(default=300.0, description="None waits forever")
	auto_approve_on_timeout: bool = Field(default=True)
	request_feedback_on_complete: bool = Field(default=False)
	human_review_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

	# Context
	enable_context_tracking: bool = Field(default=True)
	enable_reflection: bool = Field(default=True)
	max_context_learnings: int = Field(default=10, ge=1)
	max_context_outputs: int = Field(default=5, ge=1)

	@field_validator("completion_mode", mode="before")
	@classmethod
	def _normalize_completion_mode(cls, value: Any) -> Any:
		if isinstance(value, str):
			compact = value.strip().lower().replace("-", "").replace("_", "")
			for mode in CompletionMode:
				if mode.value.replace("_", "") == compact:
					return mode
		return value

	def requires_approval(self, point: InterventionPoint) -> bool:
		"""True when a human must be asked at this intervention point."""
		return self.enable_human_in_the_loop and point in self.required_approval_points

	@property
	def use_reflection(self) -> bool:
		return self.enable_reflection and self.oracle_config.enable_reflection


# =============================================================================
# Oracle verdicts
# =============================================================================


class IterationLearning(BaseModel):
	"""Something learned during an iteration that should inform later ones."""
	model_config = ConfigDict(frozen=True)

	iteration: int
	type: LearningType
	summary: str
	details: Optional[str] = None
	confidence: float = Field(default=0.8, ge=0.0, le=1.0)
	created_at: datetime = Field(default_factory=utcnow)


class ReflectionInsight(BaseModel):
	"""A self-critique captured from an oracle reflection."""
	model_config = ConfigDict(frozen=True)

	type: ReflectionType
	summary: str
	analysis: Optional[str] = None
	suggested_action: Optional[str] = None
	confidence: float = Field(default=0.8, ge=0.0, le=1.0)
	created_at: datetime = Field(default_factory=utcnow)


class OracleReflection(BaseModel):
	"""Structured self-reflection returned alongside a verdict."""
	model_config = ConfigDict(frozen=True)

	what_worked_well: Optional[str] = None
	what_could_improve: Optional[str] = None
	lessons_learned: Optional[str] = None
	suggested_strategy: Optional[str] = None

	def to_learning(self, iteration: int) -> IterationLearning:
		summary = self.lessons_learned or self.what_worked_well or "No specific learning captured"
		details = (
			f"Worked: {self.what_worked_well or ''}\n"
			f"Improve: {self.what_could_improve or ''}\n"
			f"Strategy: {self.suggested_strategy or ''}"
		)
		return IterationLearning(
			iteration=iteration,
			type=LearningType.PATTERN,
			summary=summary,
			details=details,
		)

	def to_insight(self, analysis: Optional[str] = None) -> ReflectionInsight:
		return ReflectionInsight(
			type=ReflectionType.CRITIQUE,
			summary=self.what_could_improve or self.lessons_learned or "Reflection captured",
			analysis=analysis,
			suggested_action=self.suggested_strategy,
		)


class OracleVerdict(BaseModel):
	"""The oracle's judgement of one execution output."""
	model_config = ConfigDict(frozen=True)

	is_complete: bool = False
	can_continue: bool = True
	analysis: str = ""
	next_prompt_suggestion: Optional[str] = None
	confidence: float = Field(default=0.0, ge=0.0, le=1.0)
	reflection: Optional[OracleReflection] = None
	token_usage: Optional[int] = None

	@classmethod
	def error(cls, message: str, allow_continue: bool = True) -> "OracleVerdict":
		return cls(is_complete=False, can_continue=allow_continue, analysis=f"Oracle error: {message}", confidence=0.0)

	@classmethod
	def goal_achieved(cls, analysis: str, confidence: float = 1.0) -> "OracleVerdict":
		return cls(is_complete=True, can_continue=False, analysis=analysis, confidence=confidence)

	@classmethod
	def retry_with_refined_prompt(cls, analysis: str, next_prompt: str, confidence: float = 0.5) -> "OracleVerdict":
		return cls(
			is_complete=False,
			can_continue=True,
			analysis=analysis,
			next_prompt_suggestion=next_prompt,
			confidence=confidence,
		)

	@classmethod
	def stop(cls, analysis: str, confidence: float = 1.0) -> "OracleVerdict":
		return cls(is_complete=False, can_continue=False, analysis=analysis, confidence=confidence)

	@classmethod
	def progress(cls, analysis: str, confidence: float = 0.5) -> "OracleVerdict":
		return cls(is_complete=False, can_continue=True, analysis=analysis, confidence=confidence)


# =============================================================================
# Execution context
# =============================================================================


class ErrorResolution(BaseModel):
	"""How a failure in an iteration was dealt with."""
	model_config = ConfigDict(frozen=True)

	iteration: int
	error_summary: str
	category: ErrorCategory = ErrorCategory.RUNTIME
	resolution_applied: str
	was_successful: bool = False


class ExecutionContext(BaseModel):
	"""
	Accumulated knowledge of a session, passed to the oracle as context.

	Immutable: every with_* method returns a new context.
	"""
	model_config = ConfigDict(frozen=True)

	session_id: str
	original_goal: str = ""
	current_iteration: int = 0
	current_oracle_iteration: int = 0
	previous_outputs: tuple[str, ...] = ()
	learnings: tuple[IterationLearning, ...] = ()
	reflections: tuple[ReflectionInsight, ...] = ()
	error_resolutions: tuple[ErrorResolution, ...] = ()
	human_feedback_history: tuple[HumanFeedback, ...] = ()
	metadata: dict[str, Any] = Field(default_factory=dict)
	max_outputs: int = 5
	max_learnings: int = 10

	def with_goal(self, goal: str) -> "ExecutionContext":
		return self.model_copy(update={"original_goal": goal})

	def with_next_iteration(self, iteration: Optional[int] = None) -> "ExecutionContext":
		return self.model_copy(update={
			"current_iteration": self.current_iteration + 1 if iteration is None else iteration,
			"current_oracle_iteration": 0,
		})

	def with_oracle_iteration(self, oracle_iteration: int) -> "ExecutionContext":
		return self.model_copy(update={"current_oracle_iteration": oracle_iteration})

	def with_output(self, output: str) -> "ExecutionContext":
		outputs = (self.previous_outputs + (output,))[-self.max_outputs:]
		return self.model_copy(update={"previous_outputs": outputs})

	def with_learning(self, learning: IterationLearning) -> "ExecutionContext":
		learnings = (self.learnings + (learning,))[-self.max_learnings:]
		return self.model_copy(update={"learnings": learnings})

	def with_reflection(self, insight: ReflectionInsight) -> "ExecutionContext":
		return self.model_copy(update={"reflections": self.reflections + (insight,)})

	def with_error_resolution(self, resolution: ErrorResolution) -> "ExecutionContext":
		return self.model_copy(update={"error_resolutions": self.error_resolutions + (resolution,)})

	def with_human_feedback(self, feedback: HumanFeedback) -> "ExecutionContext":
		return self.model_copy(update={"human_feedback_history": self.human_feedback_history + (feedback,)})

	def with_metadata(self, key: str, value: Any) -> "ExecutionContext":
		return self.model_copy(update={"metadata": {**self.metadata, key: value}})

	def build_context_summary(self) -> str:
		"""Render the most recent learnings, errors, feedback and reflections as text."""
		sections: list[str] = []

		if self.learnings:
			recent = self.learnings[-3:]
			lines = [f"Previous Learnings ({len(recent)}):"]
			lines.extend(f"  - [{item.type.value}] {item.summary}" for item in recent)
			sections.append("\n".join(lines))

		if self.error_resolutions:
			recent = self.error_resolutions[-2:]
			lines = [f"Error Resolutions ({len(recent)}):"]
			lines.extend(f"  - Error: {item.error_summary} → Resolution: {item.resolution_applied}" for item in recent)
			sections.append("\n".join(lines))

		if self.human_feedback_history:
			recent = self.human_feedback_history[-2:]
			lines = [f"Human Feedback ({len(recent)}):"]
			for item in recent:
				verdict = "satisfactory" if item.is_satisfactory else "needs work"
				lines.append(f"  - {verdict}: {item.comments or 'no comments'}")
			sections.append("\n".join(lines))

		if self.reflections:
			recent = self.reflections[-2:]
			lines = [f"Reflections ({len(recent)}):"]
			for item in recent:
				line = f"  - [{item.type.value}] {item.summary}"
				if item.suggested_action:
					line += f" (next: {item.suggested_action})"
				lines.append(line)
			sections.append("\n".join(lines))

		if not sections:
			return "No prior context."
		return "\n\n".join(sections)


# =============================================================================
# History, checkpoints, status
# =============================================================================


class ExecutionHistoryEntry(BaseModel):
	"""One pass of the oracle loop: what was run, what came out, what the oracle said."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(default_factory=short_id)
	session_id: str
	iteration_number: int
	oracle_iteration: int = 1
	task_id: Optional[str] = None
	execution_prompt: str
	execution_output: str = ""
	success: bool = False
	error_message: Optional[str] = None
	oracle_prompt: Optional[str] = None
	oracle_verdict: Optional[OracleVerdict] = None
	started_at: datetime = Field(default_factory=utcnow)
	completed_at: Optional[datetime] = None


class QueuedTask(BaseModel):
	"""Serializable form of a queued request."""
	model_config = ConfigDict(frozen=True)

	request_id: str
	prompt: str


class ExecutionCheckpoint(BaseModel):
	"""Snapshot of queue, history and config taken at an iteration boundary."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(default_factory=short_id)
	session_id: str
	iteration_number: int
	created_at: datetime = Field(default_factory=utcnow)
	queue_snapshot: tuple[QueuedTask, ...] = ()
	history_snapshot: tuple[ExecutionHistoryEntry, ...] = ()
	config_snapshot: AutonomousConfig = Field(default_factory=AutonomousConfig)
	state: Optional[AutonomousState] = None

	@model_validator(mode="after")
	def _check_iteration(self) -> "ExecutionCheckpoint":
		if self.iteration_number < 0:
			raise ValueError("iteration_number must be non-negative")
		return self


class AutonomousStatus(BaseModel):
	"""Point-in-time view of an orchestrator."""
	model_config = ConfigDict(frozen=True)

	state: AutonomousState
	session_id: Optional[str] = None
	queued_task_count: int = 0
	current_iteration: int = 0
	max_iterations: int = 0
	oracle_enabled: bool = False
	current_oracle_iteration: int = 0
	max_oracle_iterations: int = 0
	completion_mode: CompletionMode = CompletionMode.UNTIL_QUEUE_EMPTY
	checkpoint_count: int = 0
	checkpointing_enabled: bool = False
	history_entry_count: int = 0
	current_task_id: Optional[str] = None
	last_error: Optional[str] = None
