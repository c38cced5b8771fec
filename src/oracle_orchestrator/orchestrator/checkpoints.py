"""
Checkpoint Store - SQLite persistence for execution checkpoints.

Features:
- Save/get/delete checkpoints as JSON documents
- List checkpoints per session in creation order
- Latest checkpoint lookup for resuming a session
"""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from ..errors import CheckpointNotFoundError
from ..models import ExecutionCheckpoint

logger = logging.getLogger(__name__)


class SqliteCheckpointStore:
	"""
	SQLite-backed checkpoint storage.

	Usage:
		store = SqliteCheckpointStore("data/checkpoints.db")
		await store.init()
		await store.save(checkpoint)
		latest = await store.latest(session_id)
	"""

	def __init__(self, db_path: str | Path):
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self) -> None:
		"""Open the connection and create the schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS checkpoints (
				id TEXT PRIMARY KEY,
				session_id TEXT NOT NULL,
				iteration_number INTEGER NOT NULL,
				created_at TEXT NOT NULL,
				data TEXT NOT NULL
			)
		""")
		await self._db.execute("""
			CREATE INDEX IF NOT EXISTS idx_checkpoints_session ON checkpoints(session_id, created_at)
		""")
		await self._db.commit()
		logger.info(f"Checkpoint store initialized at {self.db_path}")

	async def close(self) -> None:
		if self._db:
			await self._db.close()
			self._db = None

	def _conn(self) -> aiosqlite.Connection:
		if self._db is None:
			raise RuntimeError("SqliteCheckpointStore.init() has not been called")
		return self._db

	async def save(self, checkpoint: ExecutionCheckpoint) -> None:
		db = self._conn()
		await db.execute(
			"""
			INSERT OR REPLACE INTO checkpoints (id, session_id, iteration_number, created_at, data)
			VALUES (?, ?, ?, ?, ?)
			""",
			(
				checkpoint.id,
				checkpoint.session_id,
				checkpoint.iteration_number,
				checkpoint.created_at.isoformat(),
				checkpoint.model_dump_json(),
			),
		)
		await db.commit()
		logger.debug(f"Saved checkpoint {checkpoint.id} (session {checkpoint.session_id}, iteration {checkpoint.iteration_number})")

	async def get(self, checkpoint_id: str) -> ExecutionCheckpoint:
		"""Load a checkpoint by id. Raises CheckpointNotFoundError if missing."""
		async with self._conn().execute("SELECT data FROM checkpoints WHERE id = ?", (checkpoint_id,)) as cursor:
			row = await cursor.fetchone()
		if row is None:
			raise CheckpointNotFoundError(f"Checkpoint {checkpoint_id} not found")
		return ExecutionCheckpoint.model_validate_json(row["data"])

	async def list_checkpoints(self, session_id: Optional[str] = None) -> list[ExecutionCheckpoint]:
		"""List checkpoints, oldest first, optionally for one session."""
		if session_id:
			query = "SELECT data FROM checkpoints WHERE session_id = ? ORDER BY created_at, iteration_number"
			params: tuple = (session_id,)
		else:
			query = "SELECT data FROM checkpoints ORDER BY created_at, iteration_number"
			params = ()
		async with self._conn().execute(query, params) as cursor:
			rows = await cursor.fetchall()
		return [ExecutionCheckpoint.model_validate_json(row["data"]) for row in rows]

	async def latest(self, session_id: str) -> Optional[ExecutionCheckpoint]:
		checkpoints = await self.list_checkpoints(session_id)
		return checkpoints[-1] if checkpoints else None

	async def delete(self, checkpoint_id: str) -> bool:
		db = self._conn()
		cursor = await db.execute("DELETE FROM checkpoints WHERE id = ?", (checkpoint_id,))
		await db.commit()
		return cursor.rowcount > 0
