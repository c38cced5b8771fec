"""Context Manager - ties the context provider, memory store and saturation monitor together."""

import logging
from typing import Optional

from .memory import InMemoryMemoryStore, MemoryStore, MemoryTier, MemoryType, MemoryUnit
from .provider import ContextItem, ContextProvider
from .saturation import SaturationMonitor, SaturationState

logger = logging.getLogger(__name__)

CONTEXT_SOURCE = "context"


class ContextManager:
	"""
	Side channel that records execution outputs for prompt building and observability.

	Each recorded output lands in the provider's recency buffer, is charged
	to the saturation monitor under the "context" source, and is stored as an
	episodic session memory.
	"""

	def __init__(
		self,
		provider: Optional[ContextProvider] = None,
		memory_store: Optional[MemoryStore] = None,
		saturation_monitor: Optional[SaturationMonitor] = None,
	):
		self.provider = provider or ContextProvider()
		self.memory_store: MemoryStore = memory_store or InMemoryMemoryStore()
		self.saturation = saturation_monitor or SaturationMonitor()

	async def record_output(
		self,
		session_id: str,
		output: str,
		iteration: int,
		success: bool = True,
	) -> ContextItem:
		item = self.provider.record_output(
			session_id,
			output,
			type="output" if success else "error",
			importance=0.5 if success else 0.7,
		)
		self.saturation.record_usage(item.estimated_tokens, CONTEXT_SOURCE)
		await self.memory_store.store(MemoryUnit(
			content=output,
			type=MemoryType.EPISODIC,
			tier=MemoryTier.SESSION,
			importance=item.importance,
			metadata={"session_id": session_id, "iteration": iteration, "success": success},
		))
		return item

	def get_summary(self, session_id: str, max_tokens: int = 1000) -> str:
		return self.provider.get_execution_summary(session_id, max_tokens)

	def get_saturation(self) -> SaturationState:
		return self.saturation.get_state()

	def reset_iteration(self) -> None:
		self.saturation.reset_iteration()

	def clear_session(self, session_id: str) -> None:
		self.provider.clear_session(session_id)
