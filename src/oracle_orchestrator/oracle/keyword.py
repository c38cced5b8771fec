"""Deterministic oracle that checks outputs for expected keywords."""

import logging
from typing import Optional, Sequence

from ..cancellation import CancellationSignal
from ..models import ExecutionContext, OracleConfig, OracleVerdict
from .base import BaseOracleVerifier

logger = logging.getLogger(__name__)


class KeywordOracleVerifier(BaseOracleVerifier):
	"""
	Goal is achieved when the output contains every expected keyword.

	Until then the verdict asks for another attempt with `retry_prompt`
	(or the original prompt), up to the engine's oracle iteration limit.
	"""

	def __init__(
		self,
		keywords: Sequence[str],
		case_sensitive: bool = False,
		retry_prompt: Optional[str] = None,
	):
		if not keywords:
			raise ValueError("at least one keyword is required")
		self.keywords = list(keywords)
		self.case_sensitive = case_sensitive
		self.retry_prompt = retry_prompt

	def _missing(self, output: str) -> list[str]:
		haystack = output if self.case_sensitive else output.lower()
		missing = []
		for keyword in self.keywords:
			needle = keyword if self.case_sensitive else keyword.lower()
			if needle not in haystack:
				missing.append(keyword)
		return missing

	async def verify(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		cancel: Optional[CancellationSignal] = None,
		use_reflection: bool = True,
	) -> OracleVerdict:
		if cancel is not None:
			cancel.raise_if_cancelled()

		missing = self._missing(execution_output)
		if not missing:
			return OracleVerdict.goal_achieved(f"Output contains {', '.join(self.keywords)}")

		found = len(self.keywords) - len(missing)
		confidence = 0.5 + 0.5 * found / len(self.keywords) if found else 0.9
		next_prompt = self.retry_prompt or original_prompt
		logger.debug(f"Keyword oracle missing {missing}")
		return OracleVerdict.retry_with_refined_prompt(
			analysis=f"Missing expected content: {', '.join(missing)}",
			next_prompt=next_prompt,
			confidence=confidence,
		)
