"""
Memory Store - bounded, tiered fact storage with keyword retrieval.

Features:
- Memory units typed as episodic/semantic/procedural/system
- Working/session/long-term tiers
- Capacity bound with eviction by lowest retention, then least recently accessed
- Partial updates with metadata merging and access recording
- In-memory and SQLite-backed implementations with identical semantics
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol

import aiosqlite
from pydantic import BaseModel, ConfigDict, Field

from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEMORIES = 1000


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class MemoryType(str, Enum):
	EPISODIC = "episodic"
	SEMANTIC = "semantic"
	PROCEDURAL = "procedural"
	SYSTEM = "system"


class MemoryTier(str, Enum):
	WORKING = "working"
	SESSION = "session"
	LONG_TERM = "long_term"


class MemoryUnit(BaseModel):
	"""A single remembered fact."""
	model_config = ConfigDict(frozen=True)

	id: str = Field(default="", description="Assigned on store when empty")
	content: str
	type: MemoryType = Field(default=MemoryType.EPISODIC)
	tier: MemoryTier = Field(default=MemoryTier.WORKING)
	importance: float = Field(default=0.5, ge=0.0, le=1.0)
	retention: float = Field(default=1.0, ge=0.0, le=1.0)
	created_at: datetime = Field(default_factory=_utcnow)
	last_accessed_at: datetime = Field(default_factory=_utcnow)
	access_count: int = Field(default=1, ge=0)
	embedding: Optional[list[float]] = Field(default=None)
	metadata: dict[str, Any] = Field(default_factory=dict)


class MemoryFilter(BaseModel):
	"""Constraints applied on retrieval. Unset fields do not filter."""
	type: Optional[MemoryType] = None
	tier: Optional[MemoryTier] = None
	min_importance: Optional[float] = None
	min_retention: Optional[float] = None
	created_after: Optional[datetime] = None


class MemoryUpdate(BaseModel):
	"""Partial patch for a memory unit."""
	content: Optional[str] = None
	importance: Optional[float] = Field(default=None, ge=0.0, le=1.0)
	tier: Optional[MemoryTier] = None
	retention: Optional[float] = Field(default=None, ge=0.0, le=1.0)
	metadata: Optional[dict[str, Any]] = None
	record_access: bool = False


class MemoryStatistics(BaseModel):
	total_count: int = 0
	count_by_tier: dict[MemoryTier, int] = Field(default_factory=dict)
	estimated_tokens: int = 0
	average_retention: float = 0.0
	last_updated: datetime = Field(default_factory=_utcnow)


class MemoryStore(Protocol):
	"""Contract shared by the memory store implementations."""

	async def store(self, memory: MemoryUnit) -> str: ...

	async def retrieve(
		self,
		query: str,
		max_results: int = 5,
		filter: Optional[MemoryFilter] = None,
	) -> list[MemoryUnit]: ...

	async def get_by_id(self, memory_id: str) -> Optional[MemoryUnit]: ...

	async def update(self, memory_id: str, update: MemoryUpdate) -> bool: ...

	async def delete(self, memory_id: str) -> bool: ...

	async def get_statistics(self) -> MemoryStatistics: ...


# =============================================================================
# Shared rules
# =============================================================================


def matches_filter(memory: MemoryUnit, filter: Optional[MemoryFilter]) -> bool:
	if filter is None:
		return True
	if filter.type is not None and memory.type != filter.type:
		return False
	if filter.tier is not None and memory.tier != filter.tier:
		return False
	if filter.min_importance is not None and memory.importance < filter.min_importance:
		return False
	if filter.min_retention is not None and memory.retention < filter.min_retention:
		return False
	if filter.created_after is not None and memory.created_at < filter.created_after:
		return False
	return True


def relevance_score(memory: MemoryUnit, query: str, now: Optional[datetime] = None) -> float:
	"""
	Score a memory against a query. Zero means no match.

	The query must appear in the content (case-insensitive). Matches are
	ranked by word overlap, recency of access (1-day half-life) and retention.
	"""
	content = memory.content.lower()
	query = query.strip().lower()
	if query and query not in content:
		return 0.0

	words = query.split()
	word_score = sum(1 for w in words if w in content) / len(words) if words else 1.0
	age_days = ((now or _utcnow()) - memory.last_accessed_at).total_seconds() / 86400
	recency_score = math.exp(-max(age_days, 0.0) * 0.693)
	score = word_score * 0.5 + recency_score * 0.3 + memory.retention * 0.2
	return max(score, 1e-9)


def eviction_key(memory: MemoryUnit) -> tuple[float, datetime]:
	"""Sort key: the first unit in ascending order is evicted first."""
	return (memory.retention, memory.last_accessed_at)


def apply_update(memory: MemoryUnit, update: MemoryUpdate) -> MemoryUnit:
	changes: dict[str, Any] = {}
	if update.content is not None:
		changes["content"] = update.content
	if update.importance is not None:
		changes["importance"] = update.importance
	if update.tier is not None:
		changes["tier"] = update.tier
	if update.retention is not None:
		changes["retention"] = update.retention
	if update.metadata is not None:
		changes["metadata"] = {**memory.metadata, **update.metadata}
	if update.record_access:
		changes["last_accessed_at"] = _utcnow()
		changes["access_count"] = memory.access_count + 1
	return memory.model_copy(update=changes)


def rank(memories: list[MemoryUnit], query: str, max_results: int, filter: Optional[MemoryFilter]) -> list[MemoryUnit]:
	now = _utcnow()
	scored = []
	for memory in memories:
		if not matches_filter(memory, filter):
			continue
		score = relevance_score(memory, query, now)
		if score > 0:
			scored.append((score, memory))
	scored.sort(key=lambda pair: (pair[0], pair[1].importance), reverse=True)
	return [memory for _, memory in scored[:max(max_results, 0)]]


def build_statistics(memories: list[MemoryUnit]) -> MemoryStatistics:
	count_by_tier: dict[MemoryTier, int] = {}
	for memory in memories:
		count_by_tier[memory.tier] = count_by_tier.get(memory.tier, 0) + 1
	return MemoryStatistics(
		total_count=len(memories),
		count_by_tier=count_by_tier,
		estimated_tokens=sum(estimate_tokens(m.content) for m in memories),
		average_retention=sum(m.retention for m in memories) / len(memories) if memories else 0.0,
	)


# =============================================================================
# Implementations
# =============================================================================


class InMemoryMemoryStore:
	"""Dictionary-backed memory store."""

	def __init__(self, max_memories: int = DEFAULT_MAX_MEMORIES):
		if max_memories < 1:
			raise ValueError("max_memories must be at least 1")
		self.max_memories = max_memories
		self._memories: dict[str, MemoryUnit] = {}

	async def store(self, memory: MemoryUnit) -> str:
		memory_id = memory.id or str(uuid.uuid4())
		self._memories[memory_id] = memory.model_copy(update={"id": memory_id})

		while len(self._memories) > self.max_memories:
			victim = min(self._memories.values(), key=eviction_key)
			logger.debug(f"Evicting memory {victim.id} (retention={victim.retention:.2f})")
			del self._memories[victim.id]

		return memory_id

	async def retrieve(
		self,
		query: str,
		max_results: int = 5,
		filter: Optional[MemoryFilter] = None,
	) -> list[MemoryUnit]:
		return rank(list(self._memories.values()), query, max_results, filter)

	async def get_by_id(self, memory_id: str) -> Optional[MemoryUnit]:
		return self._memories.get(memory_id)

	async def update(self, memory_id: str, update: MemoryUpdate) -> bool:
		existing = self._memories.get(memory_id)
		if existing is None:
			return False
		self._memories[memory_id] = apply_update(existing, update)
		return True

	async def delete(self, memory_id: str) -> bool:
		return self._memories.pop(memory_id, None) is not None

	async def get_statistics(self) -> MemoryStatistics:
		return build_statistics(list(self._memories.values()))

	def __len__(self) -> int:
		return len(self._memories)


class SqliteMemoryStore:
	"""
	SQLite-backed memory store.

	Usage:
		store = SqliteMemoryStore("data/memory.db")
		await store.init()
		memory_id = await store.store(MemoryUnit(content="Paris is the capital"))
		await store.close()
	"""

	def __init__(self, db_path: str | Path, max_memories: int = DEFAULT_MAX_MEMORIES):
		if max_memories < 1:
			raise ValueError("max_memories must be at least 1")
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self.max_memories = max_memories
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self) -> None:
		"""Open the connection and create the schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS memories (
				id TEXT PRIMARY KEY,
				type TEXT NOT NULL,
				tier TEXT NOT NULL,
				retention REAL NOT NULL,
				last_accessed_at TEXT NOT NULL,
				data TEXT NOT NULL
			)
		""")
		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_memories_eviction ON memories(retention, last_accessed_at)
		""")
		await self._db.commit()
		logger.info(f"Memory store initialized at {self.db_path}")

	async def close(self) -> None:
		if self._db:
			await self._db.close()
			self._db = None

	def _conn(self) -> aiosqlite.Connection:
		if self._db is None:
			raise RuntimeError("SqliteMemoryStore.init() has not been called")
		return self._db

	async def _write(self, memory: MemoryUnit) -> None:
		await self._conn().execute(
			"""
			INSERT OR REPLACE INTO memories (id, type, tier, retention, last_accessed_at, data)
			VALUES (?, ?, ?, ?, ?, ?)
			""",
			(
				memory.id,
				memory.type.value,
				memory.tier.value,
				memory.retention,
				memory.last_accessed_at.astimezone(timezone.utc).isoformat(),
				memory.model_dump_json(),
			),
		)

	async def _load_all(self) -> list[MemoryUnit]:
		async with self._conn().execute("SELECT data FROM memories") as cursor:
			rows = await cursor.fetchall()
		return [MemoryUnit.model_validate_json(row["data"]) for row in rows]

	async def store(self, memory: MemoryUnit) -> str:
		db = self._conn()
		memory_id = memory.id or str(uuid.uuid4())
		await self._write(memory.model_copy(update={"id": memory_id}))

		async with db.execute("SELECT COUNT(*) AS n FROM memories") as cursor:
			row = await cursor.fetchone()
		excess = row["n"] - self.max_memories
		if excess > 0:
			await db.execute(
				"""
				DELETE FROM memories WHERE id IN (
					SELECT id FROM memories ORDER BY retention ASC, last_accessed_at ASC LIMIT ?
				)
				""",
				(excess,),
			)
			logger.debug(f"Evicted {excess} memories")

		await db.commit()
		return memory_id

	async def retrieve(
		self,
		query: str,
		max_results: int = 5,
		filter: Optional[MemoryFilter] = None,
	) -> list[MemoryUnit]:
		return rank(await self._load_all(), query, max_results, filter)

	async def get_by_id(self, memory_id: str) -> Optional[MemoryUnit]:
		async with self._conn().execute("SELECT data FROM memories WHERE id = ?", (memory_id,)) as cursor:
			row = await cursor.fetchone()
		if row is None:
			return None
		return MemoryUnit.model_validate_json(row["data"])

	async def update(self, memory_id: str, update: MemoryUpdate) -> bool:
		existing = await self.get_by_id(memory_id)
		if existing is None:
			return False
		await self._write(apply_update(existing, update))
		await self._conn().commit()
		return True

	async def delete(self, memory_id: str) -> bool:
		db = self._conn()
		cursor = await db.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
		await db.commit()
		return cursor.rowcount > 0

	async def get_statistics(self) -> MemoryStatistics:
		return build_statistics(await self._load_all())

