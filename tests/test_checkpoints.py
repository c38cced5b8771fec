"""
Tests for the SQLite checkpoint store.

Tests:
- Save/get round trip of nested snapshots
- Per-session listing and latest lookup
- Missing checkpoints and deletes
"""

from datetime import datetime, timedelta, timezone

import pytest

from oracle_orchestrator.errors import CheckpointNotFoundError
from oracle_orchestrator.models import (
	AutonomousConfig,
	AutonomousState,
	CompletionMode,
	ExecutionCheckpoint,
	ExecutionHistoryEntry,
	OracleVerdict,
	QueuedTask,
)
from oracle_orchestrator.orchestrator.checkpoints import SqliteCheckpointStore

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_checkpoint(session_id: str, iteration: int) -> ExecutionCheckpoint:
	return ExecutionCheckpoint(
		session_id=session_id,
		iteration_number=iteration,
		created_at=BASE_TIME + timedelta(minutes=iteration),
		queue_snapshot=(QueuedTask(request_id=f"q{iteration}", prompt=f"next {iteration}"),),
		history_snapshot=(
			ExecutionHistoryEntry(
				session_id=session_id,
				iteration_number=iteration,
				execution_prompt="Capital of France?",
				execution_output="Paris",
				success=True,
				oracle_verdict=OracleVerdict.goal_achieved("Correct", confidence=0.9),
			),
		),
		config_snapshot=AutonomousConfig(completion_mode=CompletionMode.UNTIL_GOAL_ACHIEVED, max_iterations=7),
		state=AutonomousState.RUNNING,
	)


class TestSqliteCheckpointStore:
	"""Tests for checkpoint persistence."""

	@pytest.fixture
	def db_path(self, tmp_path):
		return tmp_path / "nested" / "checkpoints.db"

	@pytest.mark.asyncio
	async def test_save_and_get(self, db_path):
		store = SqliteCheckpointStore(db_path)
		await store.init()
		try:
			checkpoint = make_checkpoint("s1", 1)
			await store.save(checkpoint)

			loaded = await store.get(checkpoint.id)

			assert loaded == checkpoint
			assert loaded.config_snapshot.max_iterations == 7
			assert loaded.history_snapshot[0].oracle_verdict.is_complete
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_survives_reopen(self, db_path):
		checkpoint = make_checkpoint("s1", 2)
		store = SqliteCheckpointStore(db_path)
		await store.init()
		await store.save(checkpoint)
		await store.close()

		reopened = SqliteCheckpointStore(db_path)
		await reopened.init()
		try:
			assert (await reopened.get(checkpoint.id)).iteration_number == 2
		finally:
			await reopened.close()

	@pytest.mark.asyncio
	async def test_list_and_latest(self, db_path):
		store = SqliteCheckpointStore(db_path)
		await store.init()
		try:
			for iteration in (2, 1, 3):
				await store.save(make_checkpoint("s1", iteration))
			await store.save(make_checkpoint("s2", 1))

			session = await store.list_checkpoints("s1")

			assert [c.iteration_number for c in session] == [1, 2, 3]
			assert len(await store.list_checkpoints()) == 4
			assert (await store.latest("s1")).iteration_number == 3
			assert await store.latest("missing") is None
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_missing_checkpoint(self, db_path):
		store = SqliteCheckpointStore(db_path)
		await store.init()
		try:
			with pytest.raises(CheckpointNotFoundError):
				await store.get("nope")
		finally:
			await store.close()

	@pytest.mark.asyncio
	async def test_delete(self, db_path):
		store = SqliteCheckpointStore(db_path)
		await store.init()
		try:
			checkpoint = make_checkpoint("s1", 1)
			await store.save(checkpoint)

			assert await store.delete(checkpoint.id)
			assert not await store.delete(checkpoint.id)
			assert await store.list_checkpoints("s1") == []
		finally:
			await store.close()

	def test_requires_init(self, db_path):
		store = SqliteCheckpointStore(db_path)
		with pytest.raises(RuntimeError):
			store._conn()
