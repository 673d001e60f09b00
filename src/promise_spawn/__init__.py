"""promise-spawn - spawn a child process and await one structured outcome.

环境变量:
    PROMISE_SPAWN_ENCODING: stdio_string 解码编码 (默认 utf-8)
    PROMISE_SPAWN_READ_SIZE: 管道单次读取字节数 (默认 65536)
    PROMISE_SPAWN_LOG_DEBUG: 命令行日志调试模式 (默认 false)

用法:
    result = await spawn("git", ["status"], {"stdio_string": True})
"""

__version__ = "0.1.0"

from .coordinator import COMMAND_FAILED_MESSAGE, CompletionState, SpawnPromise, spawn
from .errors import CommandFailedError, SpawnError, SpawnLaunchError, SpawnStreamError
from .stdio import IGNORE, INHERIT, PIPE, StdioDescriptor
from .types import (
    ExitStatus,
    FailureReason,
    SpawnFailure,
    SpawnOptions,
    SpawnOutcome,
    SpawnSuccess,
)

__all__ = [
    "__version__",
    "spawn",
    "SpawnPromise",
    "CompletionState",
    "COMMAND_FAILED_MESSAGE",
    "SpawnOptions",
    "ExitStatus",
    "FailureReason",
    "SpawnSuccess",
    "SpawnFailure",
    "SpawnOutcome",
    "SpawnError",
    "SpawnLaunchError",
    "SpawnStreamError",
    "CommandFailedError",
    "StdioDescriptor",
    "PIPE",
    "INHERIT",
    "IGNORE",
]
