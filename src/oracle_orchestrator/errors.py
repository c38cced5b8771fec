"""Exception types raised by the orchestration engine."""

from typing import Optional


class OrchestratorError(Exception):
	"""Base class for engine errors."""
	pass


class ExecutionFailedError(OrchestratorError):
	"""Raised when a task exhausts its retries and no fallback could help."""

	def __init__(self, message: str, last_error: Optional[BaseException] = None):
		super().__init__(message)
		self.last_error = last_error


class OperationCancelledError(OrchestratorError):
	"""Raised when a cancellation signal is observed."""
	pass


class InvalidStateError(OrchestratorError):
	"""Raised when an operation is not allowed in the current state."""
	pass


class CheckpointNotFoundError(OrchestratorError, KeyError):
	"""Raised when a checkpoint id is unknown."""

	def __str__(self) -> str:
		return Exception.__str__(self)


class ConfigurationError(OrchestratorError, ValueError):
	"""Raised when configuration values are invalid."""
	pass
