"""
Oracle contract and prompt building.

An oracle judges whether an execution output satisfies the original goal.
Verification prompts are built by substituting {original_prompt},
{execution_output} and {context} into the configured template.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Protocol, runtime_checkable

from ..cancellation import CancellationSignal
from ..models import ExecutionContext, OracleConfig, OracleVerdict
from .parser import parse_verdict

logger = logging.getLogger(__name__)


def render_template(template: str, original_prompt: str, execution_output: str, context: str = "") -> str:
	"""Plain placeholder substitution; braces in the values are left alone."""
	return (
		template
		.replace("{original_prompt}", original_prompt)
		.replace("{execution_output}", execution_output)
		.replace("{context}", context)
	)


def build_verification_prompt(
	original_prompt: str,
	execution_output: str,
	config: OracleConfig,
	context: Optional[ExecutionContext] = None,
	use_reflection: bool = True,
) -> str:
	"""Pick the reflection or plain user template and fill it in."""
	if use_reflection and config.enable_reflection:
		template = config.reflection_user_prompt_template
	else:
		template = config.user_prompt_template
	summary = context.build_context_summary() if context is not None else "No prior context."
	return render_template(template, original_prompt, execution_output, summary)


@runtime_checkable
class OracleVerifier(Protocol):
	"""Anything that can judge an execution output."""

	@property
	def is_configured(self) -> bool: ...

	def build_verification_prompt(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		use_reflection: bool = True,
	) -> str: ...

	async def verify(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		cancel: Optional[CancellationSignal] = None,
		use_reflection: bool = True,
	) -> OracleVerdict: ...


class BaseOracleVerifier(ABC):
	"""Shared prompt building for oracle implementations."""

	@property
	def is_configured(self) -> bool:
		return True

	def build_verification_prompt(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		use_reflection: bool = True,
	) -> str:
		return build_verification_prompt(original_prompt, execution_output, config, context, use_reflection)

	@abstractmethod
	async def verify(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		cancel: Optional[CancellationSignal] = None,
		use_reflection: bool = True,
	) -> OracleVerdict:
		...


CompletionFunction = Callable[[str, str, OracleConfig], Awaitable[str]]


class CompletionOracleVerifier(BaseOracleVerifier):
	"""
	Oracle backed by any text-completion function.

	The function receives (system_prompt, user_prompt, config) and returns the
	model's reply; the reply is parsed into a verdict. Transport, auth and
	model selection are the function's business.
	"""

	def __init__(self, complete: Optional[CompletionFunction]):
		self.complete = complete

	@property
	def is_configured(self) -> bool:
		return self.complete is not None

	async def verify(
		self,
		original_prompt: str,
		execution_output: str,
		config: OracleConfig,
		context: Optional[ExecutionContext] = None,
		cancel: Optional[CancellationSignal] = None,
		use_reflection: bool = True,
	) -> OracleVerdict:
		if self.complete is None:
			raise RuntimeError("No completion function configured")
		if cancel is not None:
			cancel.raise_if_cancelled()

		reflect = use_reflection and config.enable_reflection
		system_prompt = config.reflection_system_prompt if reflect else config.system_prompt
		user_prompt = self.build_verification_prompt(original_prompt, execution_output, config, context, use_reflection)
		reply = await self.complete(system_prompt, user_prompt, config)
		verdict = parse_verdict(reply)
		logger.debug(f"Oracle verdict: complete={verdict.is_complete} confidence={verdict.confidence:.2f}")
		return verdict
