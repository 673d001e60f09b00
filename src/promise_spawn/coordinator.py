"""Completion coordinator: spawn a child process and await one outcome.

spawn() launches the command through a launcher and returns a SpawnPromise
right away. The promise exposes the live process handle synchronously and
settles exactly once:

- launch error: fails immediately, nothing is waited on
- stream error on stdout/stderr: fails immediately with that stream's message
- otherwise, once the join condition holds, succeeds on exit code 0 or
  fails with "command failed"

Join condition:
- stdout and stderr both piped: exit AND end of stdout AND end of stderr
- anything else: exit alone, unowned streams give no end signal

State machine:

    launching -> running -> finalized
    launching -> launch_failed
    running   -> launch_failed   (launch error reported by handle.wait())
    running   -> stream_failed

Reaching a terminal state cancels every outstanding watcher.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator, Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

import anyio
from anyio.abc import ByteReceiveStream

from .config import get_config
from .errors import error_for
from .runtime import Launcher, ProcessHandle, launch_process
from .stdio import StdioDescriptor
from .types import (
    RESERVED_FIELDS,
    ExitStatus,
    FailureReason,
    SpawnFailure,
    SpawnOptions,
    SpawnOutcome,
    SpawnSuccess,
)

__all__ = [
    "COMMAND_FAILED_MESSAGE",
    "CompletionState",
    "JoinState",
    "SpawnPromise",
    "spawn",
]

logger = logging.getLogger(__name__)

COMMAND_FAILED_MESSAGE = "command failed"


class CompletionState(str, Enum):
    """Lifecycle of a single spawn."""

    LAUNCHING = "launching"
    RUNNING = "running"
    FINALIZED = "finalized"
    LAUNCH_FAILED = "launch_failed"
    STREAM_FAILED = "stream_failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (CompletionState.LAUNCHING, CompletionState.RUNNING)


_TRANSITIONS: dict[CompletionState, frozenset[CompletionState]] = {
    CompletionState.LAUNCHING: frozenset(
        {CompletionState.RUNNING, CompletionState.LAUNCH_FAILED}
    ),
    CompletionState.RUNNING: frozenset(
        {
            CompletionState.FINALIZED,
            CompletionState.LAUNCH_FAILED,
            CompletionState.STREAM_FAILED,
        }
    ),
}


@dataclass
class JoinState:
    """Signals observed so far on the way to finalization.

    Attributes:
        wait_for_streams: True when both stdout and stderr are piped
        exited: The exit notification arrived
        stdout_ended: stdout reached end of stream
        stderr_ended: stderr reached end of stream
    """

    wait_for_streams: bool
    exited: bool = False
    stdout_ended: bool = False
    stderr_ended: bool = False

    def mark_ended(self, stream_name: str) -> None:
        if stream_name == "stdout":
            self.stdout_ended = True
        elif stream_name == "stderr":
            self.stderr_ended = True
        else:
            raise ValueError(f"Unknown stream: {stream_name}")

    def is_satisfied(self) -> bool:
        if not self.exited:
            return False
        if not self.wait_for_streams:
            return True
        return self.stdout_ended and self.stderr_ended


class SpawnPromise:
    """Awaitable result of spawn() with synchronous access to the process.

    ``await promise`` returns a SpawnSuccess or raises a SpawnError subclass
    carrying the SpawnFailure. ``await promise.outcome()`` returns either
    variant without raising.

    Example:
        p = spawn("cat", [])
        await p.stdin.send(b"hello")
        await p.stdin.aclose()
        result = await p
        assert result.stdout == b"hello"
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        options: SpawnOptions,
        extra: Mapping[str, Any] | None,
        launcher: Launcher,
    ) -> None:
        self.command = command
        self.args = list(args)
        self.options = options
        self.extra = dict(extra or {})
        self.process: ProcessHandle | None = None

        shadowed = RESERVED_FIELDS.intersection(self.extra)
        if shadowed:
            logger.warning(
                f"Extra fields {sorted(shadowed)} collide with reserved outcome fields and are ignored"
            )

        self._stdio = StdioDescriptor.from_option(options.stdio)
        self._state = CompletionState.LAUNCHING
        self._join = JoinState(
            wait_for_streams=self._stdio.stdout_piped and self._stdio.stderr_piped
        )
        self._exit_status = ExitStatus()
        # Piped outputs start empty, unowned outputs stay None
        self._stdout: bytearray | None = bytearray() if self._stdio.stdout_piped else None
        self._stderr: bytearray | None = bytearray() if self._stdio.stderr_piped else None
        self._cancel_scope: anyio.CancelScope | None = None

        loop = asyncio.get_running_loop()
        self._future: asyncio.Future[SpawnSuccess] = loop.create_future()
        self._task: asyncio.Task[None] | None = None

        launch_options = replace(options, stdio=self._stdio)
        try:
            self.process = launcher(command, self.args, launch_options)
        except OSError as e:
            logger.debug(f"Launch failed command={command}: {e}")
            self._fail(CompletionState.LAUNCH_FAILED, FailureReason.LAUNCH, str(e))
            return

        self._transition(CompletionState.RUNNING)
        logger.debug(
            f"Spawned command={command} pid={getattr(self.process, 'pid', None)} "
            f"stdio={tuple(self._stdio)}"
        )
        self._task = loop.create_task(self._supervise(self.process))

    # =========================================================================
    # Public surface
    # =========================================================================

    def __await__(self) -> Generator[Any, None, SpawnSuccess]:
        return self._future.__await__()

    async def outcome(self) -> SpawnOutcome:
        """Wait for the spawn to settle and return the outcome without raising."""
        try:
            return await self._future
        except Exception as e:
            failure = getattr(e, "outcome", None)
            if isinstance(failure, SpawnFailure):
                return failure
            raise

    @property
    def stdin(self) -> Any:
        """The process's stdin stream, if piped."""
        return getattr(self.process, "stdin", None)

    @property
    def pid(self) -> int | None:
        return getattr(self.process, "pid", None)

    @property
    def state(self) -> CompletionState:
        return self._state

    def done(self) -> bool:
        return self._future.done()

    def __repr__(self) -> str:
        return (
            f"SpawnPromise(command={self.command!r}, pid={self.pid}, "
            f"state={self._state.value})"
        )

    # =========================================================================
    # Watchers
    # =========================================================================

    async def _supervise(self, process: ProcessHandle) -> None:
        """Run the stream and exit watchers until a terminal state is reached."""
        try:
            async with anyio.create_task_group() as tg:
                self._cancel_scope = tg.cancel_scope
                if self._stdout is not None:
                    tg.start_soon(self._drain, "stdout", process.stdout, self._stdout)
                if self._stderr is not None:
                    tg.start_soon(self._drain, "stderr", process.stderr, self._stderr)
                tg.start_soon(self._watch_exit, process)
        finally:
            self._cancel_scope = None
            if not self._future.done():
                # The supervising task itself was cancelled
                logger.warning(f"Spawn supervisor stopped early command={self.command}")
                self._future.cancel()

    async def _drain(
        self,
        name: str,
        stream: ByteReceiveStream | None,
        buffer: bytearray,
    ) -> None:
        """Accumulate one piped output stream until it ends or fails."""
        if stream is None:
            # Piped slot without a stream, nothing will ever arrive
            self._stream_ended(name)
            return
        try:
            async for chunk in stream:
                if isinstance(chunk, str):
                    chunk = chunk.encode(self._encoding)
                buffer.extend(chunk)
        except Exception as e:
            logger.debug(f"{name} failed command={self.command}: {e!r}")
            self._fail(
                CompletionState.STREAM_FAILED,
                FailureReason.STREAM,
                str(e) or type(e).__name__,
            )
            return
        self._stream_ended(name)

    async def _watch_exit(self, process: ProcessHandle) -> None:
        try:
            status = await process.wait()
        except Exception as e:
            logger.debug(f"Process error command={self.command}: {e}")
            self._fail(CompletionState.LAUNCH_FAILED, FailureReason.LAUNCH, str(e))
            return
        self._exit_status = ExitStatus(*status)
        self._join.exited = True
        logger.debug(
            f"Exit command={self.command} code={self._exit_status.code} "
            f"signal={self._exit_status.signal}"
        )
        self._maybe_finalize()

    def _stream_ended(self, name: str) -> None:
        self._join.mark_ended(name)
        self._maybe_finalize()

    # =========================================================================
    # Settlement
    # =========================================================================

    @property
    def _encoding(self) -> str:
        return self.options.encoding or get_config().encoding

    def _transition(self, state: CompletionState) -> bool:
        if state not in _TRANSITIONS.get(self._state, frozenset()):
            logger.debug(
                f"Ignoring transition {self._state.value} -> {state.value} "
                f"command={self.command}"
            )
            return False
        self._state = state
        return True

    def _output(self, buffer: bytearray | None) -> bytes | str | None:
        if buffer is None:
            return None
        if self.options.stdio_string:
            return buffer.decode(self._encoding, errors="replace")
        return bytes(buffer)

    def _fields(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "args": self.args,
            "code": self._exit_status.code,
            "signal": self._exit_status.signal,
            "stdout": self._output(self._stdout),
            "stderr": self._output(self._stderr),
            "process": self.process,
        }

    def _settle(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    def _maybe_finalize(self) -> None:
        if self._state is not CompletionState.RUNNING or not self._join.is_satisfied():
            return
        self._transition(CompletionState.FINALIZED)

        if self._exit_status.succeeded:
            self._future.set_result(SpawnSuccess.merged(self._fields(), self.extra))
        else:
            self._reject(FailureReason.EXIT, COMMAND_FAILED_MESSAGE)
        logger.debug(
            f"Finalized command={self.command} code={self._exit_status.code} "
            f"signal={self._exit_status.signal}"
        )
        self._settle()

    def _fail(self, state: CompletionState, reason: FailureReason, message: str) -> None:
        if not self._transition(state):
            return
        self._reject(reason, message)
        self._settle()

    def _reject(self, reason: FailureReason, message: str) -> None:
        failure = SpawnFailure.merged(
            {**self._fields(), "message": message, "reason": reason}, self.extra
        )
        self._future.set_exception(error_for(failure, reason, message))


def spawn(
    command: str,
    args: Sequence[str] = (),
    options: SpawnOptions | Mapping[str, Any] | None = None,
    extra: Mapping[str, Any] | None = None,
    *,
    launcher: Launcher | None = None,
) -> SpawnPromise:
    """Spawn a command and return a promise of its outcome.

    Must be called with an asyncio event loop running.

    Args:
        command: Executable to run
        args: Arguments for the executable
        options: SpawnOptions or a mapping of the same keys
        extra: Fields merged into the outcome, success or failure
        launcher: Process launcher (default: subprocess.Popen based)

    Returns:
        SpawnPromise, awaitable, with .process available immediately

    Raises:
        ValueError: Invalid stdio mode
        RuntimeError: No running event loop
    """
    if isinstance(args, (str, bytes)):
        raise TypeError("args must be a sequence of strings, not a string")
    return SpawnPromise(
        command,
        args,
        SpawnOptions.coerce(options),
        extra,
        launcher or launch_process,
    )
