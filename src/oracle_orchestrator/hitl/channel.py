"""
Human-in-the-loop channel - a future-based rendezvous between the engine and a reviewer.

The engine awaits request_approval()/request_feedback(); whatever front end
the reviewer uses (terminal, chat bot, web hook) lists the pending requests
and answers them with respond_approval()/respond_feedback(). Responses may
come from another thread.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from ..cancellation import CancellationSignal
from ..errors import OperationCancelledError
from .models import (
	HumanApproval,
	HumanApprovalRequest,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanNotification,
)

logger = logging.getLogger(__name__)

PendingRequest = Union[HumanApprovalRequest, HumanFeedbackRequest]


@dataclass
class _Pending:
	request: PendingRequest
	future: asyncio.Future
	loop: asyncio.AbstractEventLoop
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class HumanInTheLoopChannel:
	"""
	In-process reviewer bridge.

	Usage:
		channel = HumanInTheLoopChannel()
		channel.on_request(lambda req: print("needs answer:", req.summary))
		...
		channel.respond_approval(HumanApproval.approve(request_id))
	"""

	def __init__(self, available: bool = True):
		self._available = available
		self._pending: dict[str, _Pending] = {}
		self._listeners: list[Callable[[PendingRequest], None]] = []
		self.notifications: list[HumanNotification] = []

	@property
	def is_available(self) -> bool:
		return self._available

	def set_available(self, available: bool) -> None:
		self._available = available

	def on_request(self, listener: Callable[[PendingRequest], None]) -> None:
		"""Register a callback invoked whenever a new request is waiting."""
		self._listeners.append(listener)

	@property
	def pending_requests(self) -> list[PendingRequest]:
		return [p.request for p in self._pending.values()]

	async def _wait(self, request: PendingRequest, cancel: Optional[CancellationSignal]) -> Any:
		loop = asyncio.get_running_loop()
		future = loop.create_future()
		self._pending[request.request_id] = _Pending(request=request, future=future, loop=loop)

		for listener in list(self._listeners):
			try:
				listener(request)
			except Exception as e:
				logger.error(f"Request listener failed: {e}")

		cancel_task = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
		try:
			waiters = {future} if cancel_task is None else {future, cancel_task}
			await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
			if future.done():
				return future.result()
			raise OperationCancelledError(cancel.reason or "Cancelled")
		finally:
			if cancel_task is not None:
				cancel_task.cancel()
			self._pending.pop(request.request_id, None)
			if not future.done():
				future.cancel()

	async def request_approval(
		self,
		request: HumanApprovalRequest,
		cancel: Optional[CancellationSignal] = None,
	) -> HumanApproval:
		logger.info(f"Approval requested [{request.intervention_point.value}]: {request.summary}")
		return await self._wait(request, cancel)

	async def request_feedback(
		self,
		request: HumanFeedbackRequest,
		cancel: Optional[CancellationSignal] = None,
	) -> HumanFeedback:
		logger.info(f"Feedback requested for {request.task_id or request.request_id}")
		return await self._wait(request, cancel)

	async def notify(self, notification: HumanNotification) -> None:
		self.notifications.append(notification)
		logger.info(f"[{notification.level.value}] {notification.title}: {notification.message}")

	def _resolve(self, request_id: str, value: Any) -> bool:
		pending = self._pending.pop(request_id, None)
		if pending is None:
			logger.warning(f"No pending request {request_id} (expired or already handled)")
			return False

		def settle() -> None:
			try:
				if not pending.future.done():
					pending.future.set_result(value)
			except asyncio.InvalidStateError:
				pass  # Resolved concurrently

		pending.loop.call_soon_threadsafe(settle)
		return True

	def respond_approval(self, approval: HumanApproval) -> bool:
		"""Answer a pending approval. Returns False if nothing was waiting."""
		return self._resolve(approval.request_id, approval)

	def respond_feedback(self, feedback: HumanFeedback) -> bool:
		"""Answer a pending feedback request. Returns False if nothing was waiting."""
		return self._resolve(feedback.request_id, feedback)
