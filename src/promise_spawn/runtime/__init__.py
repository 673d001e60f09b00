"""Runtime module for launching child processes.

This module provides the launcher contract consumed by the coordinator and
the default launcher built on subprocess.Popen.
"""

from __future__ import annotations

from .process_runner import (
    ChildProcess,
    Launcher,
    ProcessHandle,
    exit_status_from_returncode,
    launch_process,
)

__all__ = [
    "ChildProcess",
    "Launcher",
    "ProcessHandle",
    "exit_status_from_returncode",
    "launch_process",
]
