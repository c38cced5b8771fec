"""
Tests for context tracking: token estimation, provider, saturation, memory.

Tests:
- Token estimation ratios
- Recency buffer and token-budgeted summaries
- Saturation levels, change notifications and action requests
- Memory store retrieval, eviction and updates (in-memory and SQLite)
- Context manager wiring
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from oracle_orchestrator.context.manager import ContextManager
from oracle_orchestrator.context.memory import (
	InMemoryMemoryStore,
	MemoryFilter,
	MemoryTier,
	MemoryType,
	MemoryUnit,
	MemoryUpdate,
	SqliteMemoryStore,
	relevance_score,
)
from oracle_orchestrator.context.provider import ContextProvider
from oracle_orchestrator.context.saturation import (
	SaturationAction,
	SaturationConfig,
	SaturationLevel,
	SaturationMonitor,
)
from oracle_orchestrator.context.tokens import estimate_tokens


class TestTokenEstimation:
	"""Tests for character-based token estimates."""

	def test_empty_text(self):
		assert estimate_tokens("") == 0

	def test_prose_uses_four_chars_per_token(self):
		assert estimate_tokens("hello world!") == 3

	def test_code_uses_three_chars_per_token(self):
		assert estimate_tokens("{a:[1,2]}") == 3

	def test_hangul_uses_one_and_a_half_chars_per_token(self):
		assert estimate_tokens("안녕하세요") == 4


class TestContextProvider:
	"""Tests for the per-session recency buffer."""

	@pytest.fixture
	def provider(self):
		return ContextProvider(max_items=3)

	def test_oldest_items_are_evicted(self, provider):
		"""Test that only the last max_items outputs are kept."""
		for output in ("a", "b", "c", "d", "e"):
			provider.record_output("s1", output)

		assert provider.item_count("s1") == 3
		assert [item.content for item in provider.get_relevant_context("s1")] == ["e", "d", "c"]

	def test_relevant_context_is_capped_at_seven(self):
		"""Test that at most seven items come back, newest first, even when more are buffered or asked for."""
		provider = ContextProvider(max_items=20)
		for n in range(10):
			provider.record_output("s1", f"output {n}")

		items = provider.get_relevant_context("s1")

		assert [item.content for item in items] == [f"output {n}" for n in range(9, 2, -1)]
		assert len(provider.get_relevant_context("s1", limit=10)) == 7
		assert [item.content for item in provider.get_relevant_context("s1", limit=2)] == ["output 9", "output 8"]

	def test_sessions_are_isolated(self, provider):
		provider.record_output("s1", "one")
		provider.record_output("s2", "two")

		assert provider.item_count("s1") == 1
		provider.clear_session("s1")
		assert provider.item_count("s1") == 0
		assert provider.item_count("s2") == 1

	def test_summary_respects_token_budget(self, provider):
		"""Test that the summary stops before the budget would be exceeded."""
		provider.record_output("s1", "aaaa")
		provider.record_output("s1", "bbbb", type="error")
		provider.record_output("s1", "cccc")

		summary = provider.get_execution_summary("s1", max_tokens=2)

		assert summary == "[output] aaaa\n[error] bbbb"

	def test_summary_truncates_long_items(self):
		provider = ContextProvider()
		provider.record_output("s1", "x" * 300)

		summary = provider.get_execution_summary("s1", max_tokens=1000)

		assert summary == "[output] " + "x" * 200 + "..."

	def test_summary_without_history(self, provider):
		assert provider.get_execution_summary("missing") == "No execution history."

	def test_total_tokens(self, provider):
		provider.record_output("s1", "abcdefgh")
		assert provider.total_tokens("s1") == 2

	def test_invalid_capacity(self):
		with pytest.raises(ValueError):
			ContextProvider(max_items=0)


class TestSaturationMonitor:
	"""Tests for saturation levels and notifications."""

	@pytest.fixture
	def monitor(self):
		return SaturationMonitor(SaturationConfig(max_tokens=1000))

	def test_level_change_notifies_once(self, monitor):
		"""Test that handlers fire only when the level changes."""
		changes = []
		monitor.on_level_changed(changes.append)

		monitor.record_usage(500, "context")
		assert changes == []

		monitor.record_usage(150, "context")
		monitor.record_usage(10, "context")

		assert len(changes) == 1
		assert changes[0].previous_level == SaturationLevel.NORMAL
		assert changes[0].new_level == SaturationLevel.ELEVATED

	def test_action_request_suggests_tokens_to_free(self, monitor):
		requests = []
		monitor.on_action_required(requests.append)

		monitor.record_usage(650, "context")

		assert len(requests) == 1
		assert requests[0].action == SaturationAction.CONSIDER_SUMMARIZATION
		assert requests[0].suggested_tokens_to_free == 150
		assert requests[0].reason == "Saturation at 65.0% (elevated)"

	def test_no_actions_when_auto_trigger_disabled(self):
		monitor = SaturationMonitor(SaturationConfig(max_tokens=100, auto_trigger_actions=False))
		requests = []
		monitor.on_action_required(requests.append)

		monitor.record_usage(99)

		assert requests == []
		assert monitor.level == SaturationLevel.OVERFLOW

	def test_usage_by_source(self, monitor):
		monitor.record_usage(100, "context")
		monitor.record_usage(50, "prompt")

		state = monitor.get_state()

		assert state.current_tokens == 150
		assert state.usage_by_source == {"context": 100, "prompt": 50}
		assert state.available_tokens == 850

	def test_reset_iteration_is_silent(self, monitor):
		changes = []
		monitor.on_level_changed(changes.append)
		monitor.record_usage(900)
		changes.clear()

		monitor.reset_iteration()

		assert changes == []
		assert monitor.current_tokens == 0
		assert monitor.level == SaturationLevel.NORMAL

	def test_failing_handler_is_isolated(self, monitor):
		def bad(change):
			raise RuntimeError("boom")

		seen = []
		monitor.on_level_changed(bad)
		monitor.on_level_changed(seen.append)

		monitor.record_usage(990)

		assert len(seen) == 1

	def test_negative_usage_rejected(self, monitor):
		with pytest.raises(ValueError):
			monitor.record_usage(-1)

	def test_thresholds_must_be_ordered(self):
		with pytest.raises(ValidationError):
			SaturationConfig(elevated_threshold=80, high_threshold=70)


class TestInMemoryMemoryStore:
	"""Tests for the dictionary-backed memory store."""

	@pytest.mark.asyncio
	async def test_store_assigns_id(self):
		store = InMemoryMemoryStore()

		memory_id = await store.store(MemoryUnit(content="Paris is the capital of France"))

		stored = await store.get_by_id(memory_id)
		assert stored.id == memory_id
		assert stored.content == "Paris is the capital of France"

	@pytest.mark.asyncio
	async def test_retrieve_requires_substring_match(self):
		store = InMemoryMemoryStore()
		await store.store(MemoryUnit(content="Paris is the capital of France"))
		await store.store(MemoryUnit(content="Berlin is the capital of Germany"))

		results = await store.retrieve("capital of france")

		assert [m.content for m in results] == ["Paris is the capital of France"]

	@pytest.mark.asyncio
	async def test_retrieve_orders_by_relevance(self):
		"""Test that higher-retention matches rank first."""
		store = InMemoryMemoryStore()
		await store.store(MemoryUnit(id="weak", content="deploy notes", retention=0.1))
		await store.store(MemoryUnit(id="strong", content="deploy checklist", retention=1.0))

		results = await store.retrieve("deploy", max_results=1)

		assert [m.id for m in results] == ["strong"]

	@pytest.mark.asyncio
	async def test_retrieve_applies_filter(self):
		store = InMemoryMemoryStore()
		await store.store(MemoryUnit(id="a", content="note", type=MemoryType.SEMANTIC, importance=0.9))
		await store.store(MemoryUnit(id="b", content="note", type=MemoryType.EPISODIC, importance=0.9))
		await store.store(MemoryUnit(id="c", content="note", type=MemoryType.SEMANTIC, importance=0.1))

		results = await store.retrieve("note", filter=MemoryFilter(type=MemoryType.SEMANTIC, min_importance=0.5))

		assert [m.id for m in results] == ["a"]

	@pytest.mark.asyncio
	async def test_retrieve_filters_on_retention_and_age(self):
		"""Test that min_retention and created_after drop faded and older memories."""
		store = InMemoryMemoryStore()
		cutoff = datetime.now(timezone.utc) - timedelta(hours=1)
		await store.store(MemoryUnit(id="recent", content="note", retention=0.8))
		await store.store(MemoryUnit(id="faded", content="note", retention=0.2))
		await store.store(MemoryUnit(id="old", content="note", retention=0.9, created_at=cutoff - timedelta(days=1)))

		by_retention = await store.retrieve("note", filter=MemoryFilter(min_retention=0.5))
		by_age = await store.retrieve("note", filter=MemoryFilter(created_after=cutoff))
		both = await store.retrieve("note", filter=MemoryFilter(min_retention=0.5, created_after=cutoff))

		assert {m.id for m in by_retention} == {"recent", "old"}
		assert {m.id for m in by_age} == {"recent", "faded"}
		assert [m.id for m in both] == ["recent"]

	@pytest.mark.asyncio
	async def test_eviction_removes_lowest_retention(self):
		"""Test that the lowest-retention unit is evicted over capacity."""
		store = InMemoryMemoryStore(max_memories=2)
		await store.store(MemoryUnit(id="keep", content="a", retention=0.9))
		await store.store(MemoryUnit(id="evict", content="b", retention=0.1))
		await store.store(MemoryUnit(id="new", content="c", retention=0.5))

		assert len(store) == 2
		assert await store.get_by_id("evict") is None

	@pytest.mark.asyncio
	async def test_eviction_tie_breaks_on_access_time(self):
		store = InMemoryMemoryStore(max_memories=1)
		old = datetime.now(timezone.utc) - timedelta(days=2)
		await store.store(MemoryUnit(id="old", content="a", last_accessed_at=old))
		await store.store(MemoryUnit(id="fresh", content="b"))

		assert await store.get_by_id("old") is None
		assert await store.get_by_id("fresh") is not None

	@pytest.mark.asyncio
	async def test_update_merges_metadata_and_records_access(self):
		store = InMemoryMemoryStore()
		memory_id = await store.store(MemoryUnit(content="x", metadata={"a": 1}))

		updated = await store.update(memory_id, MemoryUpdate(
			importance=0.9,
			tier=MemoryTier.LONG_TERM,
			metadata={"b": 2},
			record_access=True,
		))

		memory = await store.get_by_id(memory_id)
		assert updated
		assert memory.importance == 0.9
		assert memory.tier == MemoryTier.LONG_TERM
		assert memory.metadata == {"a": 1, "b": 2}
		assert memory.access_count == 2

	@pytest.mark.asyncio
	async def test_update_and_delete_missing(self):
		store = InMemoryMemoryStore()
		assert await store.update("nope", MemoryUpdate(content="x")) is False
		assert await store.delete("nope") is False

	@pytest.mark.asyncio
	async def test_statistics(self):
		store = InMemoryMemoryStore()
		await store.store(MemoryUnit(content="abcd", tier=MemoryTier.SESSION, retention=0.5))
		await store.store(MemoryUnit(content="efgh", tier=MemoryTier.SESSION, retention=1.0))

		stats = await store.get_statistics()

		assert stats.total_count == 2
		assert stats.count_by_tier == {MemoryTier.SESSION: 2}
		assert stats.estimated_tokens == 2
		assert stats.average_retention == 0.75

	def test_relevance_score_zero_without_match(self):
		assert relevance_score(MemoryUnit(content="hello"), "bye") == 0.0


class TestSqliteMemoryStore:
	"""Tests for the SQLite-backed memory store."""

	@pytest.mark.asyncio
	async def test_roundtrip_and_retrieve(self, tmp_path):
		store = SqliteMemoryStore(tmp_path / "memory.db")
		await store.init()
		try:
			memory_id = await store.store(MemoryUnit(content="Paris is the capital", metadata={"k": "v"}))

			loaded = await store.get_by_id(memory_id)
			results = await store.retrieve("paris")

			assert loaded.metadata == {"k": "v"}
			assert [m.id for m in results] == [memory_id]
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_eviction_matches_in_memory_rules(self, tmp_path):
		store = SqliteMemoryStore(tmp_path / "memory.db", max_memories=2)
		await store.init()
		try:
			await store.store(MemoryUnit(id="keep", content="a", retention=0.9))
			await store.store(MemoryUnit(id="evict", content="b", retention=0.1))
			await store.store(MemoryUnit(id="new", content="c", retention=0.5))

			stats = await store.get_statistics()
			assert stats.total_count == 2
			assert await store.get_by_id("evict") is None
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_update_and_delete(self, tmp_path):
		store = SqliteMemoryStore(tmp_path / "memory.db")
		await store.init()
		try:
			memory_id = await store.store(MemoryUnit(content="x"))

			assert await store.update(memory_id, MemoryUpdate(content="y"))
			assert (await store.get_by_id(memory_id)).content == "y"
			assert await store.delete(memory_id)
			assert await store.get_by_id(memory_id) is None
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_requires_init(self, tmp_path):
		store = SqliteMemoryStore(tmp_path / "memory.db")
		with pytest.raises(RuntimeError):
			await store.get_by_id("x")


class TestContextManager:
	"""Tests for the combined context side channel."""

	@pytest.mark.asyncio
	async def test_record_output_feeds_all_components(self):
		manager = ContextManager()

		item = await manager.record_output("s1", "build failed", iteration=2, success=False)

		assert item.type == "error"
		assert item.importance == 0.7
		assert manager.provider.item_count("s1") == 1
		assert manager.get_saturation().usage_by_source == {"context": item.estimated_tokens}
		memories = await manager.memory_store.retrieve("build failed")
		assert memories[0].type == MemoryType.EPISODIC
		assert memories[0].tier == MemoryTier.SESSION
		assert memories[0].metadata == {"session_id": "s1", "iteration": 2, "success": False}

	@pytest.mark.asyncio
	async def test_summary_and_clear(self):
		manager = ContextManager()
		await manager.record_output("s1", "step one", iteration=1)

		assert manager.get_summary("s1") == "[output] step one"
		manager.clear_session("s1")
		assert manager.get_summary("s1") == "No execution history."
