"""Cooperative cancellation shared by the engine and its collaborators."""

import asyncio
from typing import Optional

from .errors import OperationCancelledError


class CancellationSignal:
	"""
	A one-way cancel flag that can be awaited.

	Executors, oracles and human-in-the-loop providers receive the signal
	and may call raise_if_cancelled() at safe points. sleep() returns early
	when cancellation is requested.
	"""

	def __init__(self):
		self._event = asyncio.Event()
		self.reason: Optional[str] = None

	@property
	def is_cancelled(self) -> bool:
		return self._event.is_set()

	def cancel(self, reason: str = "Cancelled") -> None:
		if not self._event.is_set():
			self.reason = reason
			self._event.set()

	def raise_if_cancelled(self) -> None:
		if self._event.is_set():
			raise OperationCancelledError(self.reason or "Cancelled")

	async def wait(self) -> None:
		await self._event.wait()

	async def sleep(self, seconds: float) -> None:
		"""Sleep for up to `seconds`, raising if cancelled before or during the wait."""
		self.raise_if_cancelled()
		if seconds <= 0:
			await asyncio.sleep(0)
			self.raise_if_cancelled()
			return
		try:
			await asyncio.wait_for(self._event.wait(), timeout=seconds)
		except asyncio.TimeoutError:
			return
		self.raise_if_cancelled()
