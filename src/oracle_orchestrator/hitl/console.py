"""
Terminal reviewer using rich prompts.

Input comes from one long-lived reader thread per stream. A prompt that
times out or is cancelled only stops waiting; the reader stays put and
the next prompt picks up where it left off.
"""

import asyncio
import logging
import sys
import threading
from collections import deque
from typing import Any, Optional, TextIO

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, InvalidResponse, Prompt, PromptBase

from ..cancellation import CancellationSignal
from ..errors import OperationCancelledError
from .models import (
	ApprovalDecision,
	HumanApproval,
	HumanApprovalRequest,
	HumanFeedback,
	HumanFeedbackRequest,
	HumanNotification,
	NotificationLevel,
)

logger = logging.getLogger(__name__)

LEVEL_STYLES = {
	NotificationLevel.INFO: "cyan",
	NotificationLevel.WARNING: "yellow",
	NotificationLevel.ERROR: "red",
	NotificationLevel.SUCCESS: "green",
}


def _wake(future: asyncio.Future) -> None:
	if not future.done():
		future.set_result(None)


class LineReader:
	"""
	Reads lines from a stream on a single daemon thread.

	The thread starts on the first readline() and lives until the stream
	ends. Lines typed while nobody is waiting are kept for the next caller.
	"""

	def __init__(self, stream: Optional[TextIO] = None):
		self._stream = stream
		self._lock = threading.Lock()
		self._lines: deque[str] = deque()
		self._eof = False
		self._waiter: Optional[tuple[asyncio.AbstractEventLoop, asyncio.Future]] = None
		self._thread: Optional[threading.Thread] = None

	@property
	def started(self) -> bool:
		return self._thread is not None

	def _start(self) -> None:
		with self._lock:
			if self._thread is not None:
				return
			self._thread = threading.Thread(target=self._run, name="oracle-orchestrator-input", daemon=True)
		self._thread.start()

	def _run(self) -> None:
		stream = self._stream if self._stream is not None else sys.stdin
		while True:
			try:
				line = stream.readline()
			except (OSError, ValueError) as e:
				logger.warning(f"Stopped reading input: {e}")
				line = ""

			with self._lock:
				if line:
					self._lines.append(line)
				else:
					self._eof = True
				waiter, self._waiter = self._waiter, None

			if waiter is not None:
				loop, future = waiter
				try:
					loop.call_soon_threadsafe(_wake, future)
				except RuntimeError:
					logger.debug("Input arrived after the event loop closed")
			if not line:
				return

	async def readline(self, cancel: Optional[CancellationSignal] = None) -> str:
		"""
		Next line without its line ending.

		Raises:
			EOFError: If the stream has ended
			OperationCancelledError: If cancellation is requested while waiting
		"""
		self._start()
		loop = asyncio.get_running_loop()
		while True:
			with self._lock:
				if self._lines:
					return self._lines.popleft().rstrip("\r\n")
				if self._eof:
					raise EOFError("Input closed")
				future = loop.create_future()
				self._waiter = (loop, future)

			cancel_task = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
			try:
				waiters = {future} if cancel_task is None else {future, cancel_task}
				await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
				if not future.done():
					raise OperationCancelledError(cancel.reason or "Cancelled")
			finally:
				if cancel_task is not None:
					cancel_task.cancel()
				with self._lock:
					if self._waiter is not None and self._waiter[1] is future:
						self._waiter = None
				if not future.done():
					future.cancel()


_stdin_reader: Optional[LineReader] = None


def stdin_reader() -> LineReader:
	"""The process-wide reader for sys.stdin."""
	global _stdin_reader
	if _stdin_reader is None:
		_stdin_reader = LineReader()
	return _stdin_reader


class ConsoleHumanInTheLoop:
	"""Asks the person at the terminal."""

	def __init__(self, console: Optional[Console] = None, reader: Optional[LineReader] = None):
		self.console = console or Console()
		self.reader = reader or stdin_reader()

	@property
	def is_available(self) -> bool:
		return self.console.is_terminal

	async def _ask(self, prompt: PromptBase, default: Any = ..., cancel: Optional[CancellationSignal] = None) -> Any:
		while True:
			self.console.print(prompt.make_prompt(default), end="")
			try:
				value = await self.reader.readline(cancel)
			except EOFError:
				raise OperationCancelledError("Input closed while waiting for a reply")
			if value == "" and default is not ...:
				return default
			try:
				return prompt.process_response(value)
			except InvalidResponse as error:
				prompt.on_validate_error(value, error)

	async def _ask_approval(self, request: HumanApprovalRequest, cancel: Optional[CancellationSignal]) -> HumanApproval:
		body = request.summary
		if request.details:
			body += f"\n\n[dim]{request.details}[/dim]"
		if request.suggested_action:
			body += f"\n\nSuggested: {request.suggested_action}"
		self.console.print(Panel(
			body,
			title=f"Approval needed: {request.intervention_point.value}",
			subtitle=f"risk: {request.risk_level.value}",
			border_style="yellow",
		))

		choice = await self._ask(
			Prompt("Decision", console=self.console, choices=["approve", "reject", "modify"]),
			default="approve",
			cancel=cancel,
		)
		if choice == "reject":
			reason = await self._ask(Prompt("Reason", console=self.console), default="", cancel=cancel)
			return HumanApproval.reject(request.request_id, feedback=reason or None)
		if choice == "modify":
			modified = await self._ask(Prompt("New prompt", console=self.console), cancel=cancel)
			return HumanApproval(
				request_id=request.request_id,
				decision=ApprovalDecision.MODIFY_AND_APPROVE,
				modified_action=modified,
			)
		return HumanApproval.approve(request.request_id)

	async def _ask_feedback(self, request: HumanFeedbackRequest, cancel: Optional[CancellationSignal]) -> HumanFeedback:
		output = request.execution_output
		if len(output) > 1500:
			output = output[:1500] + "..."
		self.console.print(Panel(output, title=f"Result: {request.original_prompt[:60]}", border_style="blue"))
		if request.oracle_analysis:
			self.console.print(f"[dim]Oracle: {request.oracle_analysis}[/dim]")

		satisfactory = await self._ask(Confirm("Is this satisfactory?", console=self.console), default=True, cancel=cancel)
		rating = await self._ask(
			IntPrompt("Rating (1-5)", console=self.console, choices=["1", "2", "3", "4", "5"]),
			default=4,
			cancel=cancel,
		)
		comments = await self._ask(Prompt("Comments", console=self.console), default="", cancel=cancel)
		return HumanFeedback(
			request_id=request.request_id,
			is_satisfactory=satisfactory,
			rating=rating,
			comments=comments or None,
		)

	async def request_approval(
		self,
		request: HumanApprovalRequest,
		cancel: Optional[CancellationSignal] = None,
	) -> HumanApproval:
		if cancel is not None:
			cancel.raise_if_cancelled()
		return await self._ask_approval(request, cancel)

	async def request_feedback(
		self,
		request: HumanFeedbackRequest,
		cancel: Optional[CancellationSignal] = None,
	) -> HumanFeedback:
		if cancel is not None:
			cancel.raise_if_cancelled()
		return await self._ask_feedback(request, cancel)

	async def notify(self, notification: HumanNotification) -> None:
		style = LEVEL_STYLES.get(notification.level, "white")
		self.console.print(f"[{style}]{notification.title}[/{style}] {notification.message}")
