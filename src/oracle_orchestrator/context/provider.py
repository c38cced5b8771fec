"""
Context Provider - bounded working-memory view of recent execution outputs.

Features:
- Per-session recency buffer with oldest-first eviction
- "Most relevant" context as the most recent items
- Token-budgeted execution summaries
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

RELEVANT_CONTEXT_LIMIT = 7
SUMMARY_LINE_LIMIT = 200


@dataclass
class ContextItem:
	"""A recorded output in the working context."""
	content: str
	type: str = "output"
	importance: float = 0.5
	estimated_tokens: int = 0
	recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ContextProvider:
	"""
	Keeps the last `max_items` outputs per session.

	Usage:
		provider = ContextProvider(max_items=50)
		provider.record_output("abc123", "step one done")
		items = provider.get_relevant_context("abc123")
		summary = provider.get_execution_summary("abc123", max_tokens=500)
	"""

	def __init__(self, max_items: int = 50):
		if max_items < 1:
			raise ValueError("max_items must be at least 1")
		self.max_items = max_items
		self._sessions: dict[str, deque[ContextItem]] = {}

	def record_output(
		self,
		session_id: str,
		output: str,
		type: str = "output",
		importance: float = 0.5,
	) -> ContextItem:
		"""Append an output, evicting the oldest item when over capacity."""
		item = ContextItem(
			content=output,
			type=type,
			importance=importance,
			estimated_tokens=estimate_tokens(output),
		)
		buffer = self._sessions.setdefault(session_id, deque(maxlen=self.max_items))
		buffer.append(item)
		return item

	def get_relevant_context(self, session_id: str, limit: int = RELEVANT_CONTEXT_LIMIT) -> list[ContextItem]:
		"""Return up to `limit` items, most recent first."""
		buffer = self._sessions.get(session_id)
		if not buffer:
			return []
		limit = min(limit, RELEVANT_CONTEXT_LIMIT)
		return list(reversed(buffer))[:limit]

	def get_execution_summary(self, session_id: str, max_tokens: int = 1000) -> str:
		"""
		Concatenate items oldest-first until the token budget would be exceeded.

		Args:
			session_id: Session to summarize
			max_tokens: Budget for the summary, by estimated token count

		Returns:
			Newline-joined "[type] content" lines, or "No execution history."
		"""
		buffer = self._sessions.get(session_id)
		if not buffer:
			return "No execution history."

		lines: list[str] = []
		used = 0
		for item in buffer:
			if used + item.estimated_tokens > max_tokens:
				break
			content = item.content
			if len(content) > SUMMARY_LINE_LIMIT:
				content = content[:SUMMARY_LINE_LIMIT] + "..."
			lines.append(f"[{item.type}] {content}")
			used += item.estimated_tokens

		if not lines:
			return "No execution history."
		return "\n".join(lines)

	def item_count(self, session_id: str) -> int:
		return len(self._sessions.get(session_id, ()))

	def total_tokens(self, session_id: str) -> int:
		return sum(item.estimated_tokens for item in self._sessions.get(session_id, ()))

	def clear_session(self, session_id: str) -> None:
		self._sessions.pop(session_id, None)
