"""
Command Executor - runs a prompt through an external command.

The prompt is written to the command's stdin; each stdout line is streamed
back as partial output. A non-zero exit code is a failed result.
"""

import asyncio
import contextlib
import logging
import shlex
from pathlib import Path
from typing import Optional, Sequence, Union

from ..cancellation import CancellationSignal
from ..errors import OperationCancelledError
from .base import OutputCallback, TaskOutput, TaskRequest, TaskResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600


class CommandTaskExecutor:
	"""Executes requests by piping the prompt into a subprocess."""

	def __init__(
		self,
		command: Union[str, Sequence[str]],
		timeout: Optional[float] = DEFAULT_TIMEOUT,
		cwd: Optional[Union[str, Path]] = None,
		env: Optional[dict[str, str]] = None,
	):
		self.command = shlex.split(command) if isinstance(command, str) else list(command)
		if not self.command:
			raise ValueError("command must not be empty")
		self.timeout = timeout
		self.cwd = str(cwd) if cwd else None
		self.env = env

	async def execute(
		self,
		request: TaskRequest,
		on_output: Optional[OutputCallback] = None,
		cancel: Optional[CancellationSignal] = None,
	) -> TaskResult:
		if cancel is not None:
			cancel.raise_if_cancelled()

		logger.info(f"Running {self.command[0]} for {request.request_id}")
		try:
			process = await asyncio.create_subprocess_exec(
				*self.command,
				stdin=asyncio.subprocess.PIPE,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
				cwd=self.cwd,
				env=self.env,
			)
		except FileNotFoundError:
			return TaskResult(
				request_id=request.request_id,
				success=False,
				error_output=f"Command not found: {self.command[0]}",
			)

		lines: list[str] = []

		async def pump() -> str:
			stderr_task = asyncio.ensure_future(process.stderr.read())
			try:
				process.stdin.write(request.prompt.encode())
				await process.stdin.drain()
			except (BrokenPipeError, ConnectionResetError):
				logger.debug(f"{self.command[0]} closed stdin early")
			finally:
				process.stdin.close()

			async for raw in process.stdout:
				line = raw.decode(errors="replace").rstrip("\r\n")
				lines.append(line)
				if on_output is not None:
					on_output(TaskOutput(request_id=request.request_id, content=line))

			stderr = await stderr_task
			await process.wait()
			return stderr.decode(errors="replace")

		pump_task = asyncio.ensure_future(pump())
		waiters = {pump_task}
		cancel_task = None
		if cancel is not None:
			cancel_task = asyncio.ensure_future(cancel.wait())
			waiters.add(cancel_task)

		try:
			done, _ = await asyncio.wait(waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
		finally:
			if cancel_task is not None:
				cancel_task.cancel()

		if pump_task not in done:
			await self._terminate(process, pump_task)
			if cancel is not None and cancel.is_cancelled:
				raise OperationCancelledError(cancel.reason or "Cancelled")
			return TaskResult(
				request_id=request.request_id,
				success=False,
				output="\n".join(lines),
				error_output=f"Timed out after {self.timeout} seconds",
			)

		stderr = pump_task.result()
		output = "\n".join(lines)
		if process.returncode != 0:
			return TaskResult(
				request_id=request.request_id,
				success=False,
				output=output,
				error_output=f"Exited with code {process.returncode}: {stderr[:500]}",
				metadata={"returncode": process.returncode},
			)

		return TaskResult(
			request_id=request.request_id,
			success=True,
			output=output,
			error_output=stderr or None,
			metadata={"returncode": 0},
		)

	async def _terminate(self, process: asyncio.subprocess.Process, pump_task: asyncio.Future) -> None:
		if process.returncode is None:
			with contextlib.suppress(ProcessLookupError):
				process.kill()
		pump_task.cancel()
		with contextlib.suppress(asyncio.CancelledError, Exception):
			await pump_task
		with contextlib.suppress(ProcessLookupError):
			await process.wait()
