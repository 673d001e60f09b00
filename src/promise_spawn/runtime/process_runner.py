"""Process launcher contract and the default subprocess.Popen launcher.

promise-spawn runtime module v0.1.0

This module provides:
- ProcessHandle: what the coordinator expects back from a launcher
- Launcher: the launcher callable signature
- ChildProcess: a ProcessHandle over subprocess.Popen
- launch_process(): the default launcher

Key design points:
- The child is started synchronously, so the handle exists before any
  awaiting happens and launch errors surface as OSError right away
- Pipes are exposed as anyio byte streams; blocking pipe I/O and
  Popen.wait() run in worker threads behind a per-process CapacityLimiter
- Worker threads are abandoned on cancellation, so cancelling a watcher
  never blocks on a child that is still running
"""

from __future__ import annotations

import logging
import signal
import subprocess
import sys
from collections.abc import Callable, Sequence
from typing import IO, Any, Protocol

import anyio
from anyio.abc import ByteReceiveStream, ByteSendStream

from ..config import get_config
from ..stdio import StdioDescriptor
from ..types import ExitStatus, SpawnOptions

__all__ = [
    "ProcessHandle",
    "Launcher",
    "ChildProcess",
    "PipeReceiveStream",
    "PipeSendStream",
    "launch_process",
    "exit_status_from_returncode",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# stdout, stderr, wait() and one stdin write can block at the same time
THREADS_PER_PROCESS = 4


class ProcessHandle(Protocol):
    """Live handle to a launched child process.

    Attributes:
        pid: Process id, if the launcher has one
        stdin: Writable stream, present only when stdin is piped
        stdout: Readable stream, present only when stdout is piped
        stderr: Readable stream, present only when stderr is piped
    """

    pid: int | None
    stdin: ByteSendStream | None
    stdout: ByteReceiveStream | None
    stderr: ByteReceiveStream | None

    async def wait(self) -> ExitStatus:
        """Wait for the process to exit.

        Raises:
            OSError: The process failed to launch
        """
        ...

    def kill(self, sig: str | int = "SIGTERM") -> None:
        """Send a signal to the process."""
        ...


Launcher = Callable[[str, Sequence[str], SpawnOptions], ProcessHandle]


def exit_status_from_returncode(returncode: int) -> ExitStatus:
    """Convert a Popen return code into an ExitStatus.

    A negative return code -N means the child was terminated by signal N.
    """
    if returncode >= 0:
        return ExitStatus(code=returncode, signal=None)
    try:
        name = signal.Signals(-returncode).name
    except ValueError:
        name = f"SIG{-returncode}"
    return ExitStatus(code=None, signal=name)


def _resolve_signal(sig: str | int) -> int:
    if isinstance(sig, int):
        return sig
    name = sig.upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError:
        raise ValueError(f"Unknown signal: {sig}") from None


class _WorkerThreads:
    """Runs blocking calls for one child process in worker threads."""

    def __init__(self) -> None:
        self._limiter: anyio.CapacityLimiter | None = None

    def _get_limiter(self) -> anyio.CapacityLimiter:
        # Created lazily, CapacityLimiter needs a running event loop
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(THREADS_PER_PROCESS)
        return self._limiter

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        return await anyio.to_thread.run_sync(
            func, *args, abandon_on_cancel=True, limiter=self._get_limiter()
        )


class PipeReceiveStream(ByteReceiveStream):
    """Read end of a child's stdout or stderr pipe."""

    def __init__(
        self,
        pipe: IO[bytes],
        read_size: int,
        threads: _WorkerThreads | None = None,
    ) -> None:
        self._pipe = pipe
        self._read_size = read_size
        self._threads = threads or _WorkerThreads()

    async def receive(self, max_bytes: int | None = None) -> bytes:
        """Return the next chunk of output.

        Raises:
            anyio.EndOfStream: The child closed its end of the pipe
        """
        if self._pipe.closed:
            raise anyio.EndOfStream
        size = max_bytes or self._read_size
        # read1 returns as soon as any data is available
        data = await self._threads.run(self._pipe.read1, size)
        if not data:
            self._pipe.close()
            raise anyio.EndOfStream
        return data

    async def aclose(self) -> None:
        self._pipe.close()


class PipeSendStream(ByteSendStream):
    """Write end of a child's stdin pipe."""

    def __init__(self, pipe: IO[bytes], threads: _WorkerThreads | None = None) -> None:
        self._pipe = pipe
        self._threads = threads or _WorkerThreads()

    def _write(self, data: bytes) -> None:
        self._pipe.write(data)
        self._pipe.flush()

    async def send(self, item: bytes) -> None:
        """Write bytes to the child's stdin.

        Raises:
            BrokenPipeError: The child closed its stdin
            anyio.ClosedResourceError: The stream was already closed
        """
        if self._pipe.closed:
            raise anyio.ClosedResourceError
        await self._threads.run(self._write, item)

    async def aclose(self) -> None:
        """Close stdin, signalling end of input to the child."""
        if self._pipe.closed:
            return
        await self._threads.run(self._pipe.close)


class ChildProcess:
    """ProcessHandle over a subprocess.Popen instance.

    Example:
        proc = launch_process("cat", [], SpawnOptions())
        await proc.stdin.send(b"hello")
        await proc.stdin.aclose()
        status = await proc.wait()
    """

    def __init__(self, popen: subprocess.Popen[bytes], read_size: int) -> None:
        self._popen = popen
        self._threads = _WorkerThreads()
        self.pid: int | None = popen.pid
        self.stdin: PipeSendStream | None = None
        self.stdout: PipeReceiveStream | None = None
        self.stderr: PipeReceiveStream | None = None

        if popen.stdin is not None:
            self.stdin = PipeSendStream(popen.stdin, self._threads)
        if popen.stdout is not None:
            self.stdout = PipeReceiveStream(popen.stdout, read_size, self._threads)
        if popen.stderr is not None:
            self.stderr = PipeReceiveStream(popen.stderr, read_size, self._threads)

    @property
    def returncode(self) -> int | None:
        return self._popen.returncode

    async def wait(self) -> ExitStatus:
        """Wait for the child to exit and return its exit status."""
        returncode = await self._threads.run(self._popen.wait)
        status = exit_status_from_returncode(returncode)
        logger.debug(
            f"Subprocess exited pid={self.pid} "
            f"code={status.code} signal={status.signal}"
        )
        return status

    def kill(self, sig: str | int = "SIGTERM") -> None:
        """Send a signal to the child.

        Args:
            sig: Signal name ("SIGTERM", "TERM") or number

        Raises:
            ValueError: Unknown signal name
        """
        signum = _resolve_signal(sig)
        if self._popen.returncode is not None:
            logger.debug(f"Subprocess already exited pid={self.pid}")
            return
        try:
            self._popen.send_signal(signum)
            logger.debug(f"Sent signal {signum} to pid={self.pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={self.pid}")

    def __repr__(self) -> str:
        return f"ChildProcess(pid={self.pid}, returncode={self.returncode})"


def _build_popen_kwargs(options: SpawnOptions) -> dict[str, Any]:
    """Build subprocess.Popen kwargs from spawn options.

    Args:
        options: Spawn options; stdio may be a raw option or a descriptor

    Returns:
        Dict of kwargs for subprocess.Popen

    Raises:
        OSError: uid/gid requested on Windows
    """
    kwargs: dict[str, Any] = StdioDescriptor.from_option(options.stdio).popen_args()

    if options.cwd is not None:
        kwargs["cwd"] = options.cwd
    if options.env is not None:
        kwargs["env"] = dict(options.env)

    if options.uid is not None or options.gid is not None:
        if IS_WINDOWS:
            # Popen has no user/group switching on Windows
            raise OSError("uid and gid are not supported on Windows")
        if options.uid is not None:
            kwargs["user"] = options.uid
        if options.gid is not None:
            kwargs["group"] = options.gid

    return kwargs


def launch_process(
    command: str, args: Sequence[str], options: SpawnOptions
) -> ChildProcess:
    """Default launcher: start the command with subprocess.Popen.

    Args:
        command: Executable to run (no shell interpretation)
        args: Arguments passed to the executable
        options: Spawn options

    Returns:
        Handle to the running child

    Raises:
        OSError: The executable could not be started
    """
    kwargs = _build_popen_kwargs(options)
    argv = [command, *args]

    try:
        popen = subprocess.Popen(argv, **kwargs)
    except subprocess.SubprocessError as e:
        # Failures in the child before exec, keep the launch-error contract
        raise OSError(str(e)) from e

    logger.debug(
        f"Started subprocess pid={popen.pid} "
        f"argv={argv[0]} cwd={options.cwd}"
    )
    return ChildProcess(popen, get_config().read_size)
