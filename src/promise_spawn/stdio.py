"""Stdio mode normalization.

A stdio option is either one slot applied to stdin, stdout and stderr, or a
sequence of up to three slots in that order. Each slot is one of:

- "pipe" (also None and subprocess.PIPE): owned by the coordinator
- "inherit": shared with the parent process
- "ignore" (also subprocess.DEVNULL): discarded
- an int file descriptor or a file object, handed through unmodified

The option is resolved once into a StdioDescriptor when a spawn starts.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO, Any, Union

__all__ = [
    "PIPE",
    "INHERIT",
    "IGNORE",
    "StdioSlot",
    "StdioOption",
    "StdioDescriptor",
]

PIPE = "pipe"
INHERIT = "inherit"
IGNORE = "ignore"

_MODES = frozenset({PIPE, INHERIT, IGNORE})

StdioSlot = Union[str, int, IO[Any], None]
StdioOption = Union[StdioSlot, Sequence[StdioSlot], "StdioDescriptor"]


def _normalize_slot(slot: StdioSlot) -> str | int | IO[Any]:
    """Map one slot onto a mode string or a pass-through descriptor."""
    if slot is None or slot == subprocess.PIPE:
        return PIPE
    if slot == subprocess.DEVNULL:
        return IGNORE
    if isinstance(slot, str):
        mode = slot.lower()
        if mode not in _MODES:
            raise ValueError(f"Unknown stdio mode: {slot!r}")
        return mode
    if isinstance(slot, bool):
        raise TypeError(f"Invalid stdio slot: {slot!r}")
    if isinstance(slot, int):
        if slot < 0:
            raise ValueError(f"Invalid file descriptor: {slot}")
        return slot
    if hasattr(slot, "fileno"):
        return slot
    raise TypeError(f"Invalid stdio slot: {slot!r}")


@dataclass(frozen=True)
class StdioDescriptor:
    """Resolved stdio configuration, one slot per standard stream.

    Attributes:
        stdin: Slot for the child's standard input
        stdout: Slot for the child's standard output
        stderr: Slot for the child's standard error
    """

    stdin: str | int | IO[Any] = PIPE
    stdout: str | int | IO[Any] = PIPE
    stderr: str | int | IO[Any] = PIPE

    @classmethod
    def from_option(cls, stdio: StdioOption = PIPE) -> "StdioDescriptor":
        """Resolve a stdio option into a descriptor.

        Args:
            stdio: Single slot, sequence of up to three slots, or a descriptor

        Returns:
            The normalized descriptor

        Raises:
            ValueError: Unknown mode string or more than three slots
            TypeError: Slot of an unsupported type
        """
        if isinstance(stdio, StdioDescriptor):
            return stdio
        if isinstance(stdio, (list, tuple)):
            if len(stdio) > 3:
                raise ValueError(
                    f"stdio accepts at most 3 slots, got {len(stdio)}"
                )
            # Missing trailing slots are piped
            slots = list(stdio) + [PIPE] * (3 - len(stdio))
            return cls(*(_normalize_slot(slot) for slot in slots))
        slot = _normalize_slot(stdio)
        return cls(slot, slot, slot)

    def __iter__(self):
        return iter((self.stdin, self.stdout, self.stderr))

    @staticmethod
    def is_pipe(slot: Any) -> bool:
        return slot == PIPE

    @property
    def stdin_piped(self) -> bool:
        return self.is_pipe(self.stdin)

    @property
    def stdout_piped(self) -> bool:
        return self.is_pipe(self.stdout)

    @property
    def stderr_piped(self) -> bool:
        return self.is_pipe(self.stderr)

    def popen_args(self) -> dict[str, Any]:
        """Translate the slots into subprocess.Popen keyword arguments."""
        return {
            name: _to_popen(slot)
            for name, slot in zip(("stdin", "stdout", "stderr"), self)
        }


def _to_popen(slot: str | int | IO[Any]) -> Any:
    if slot == PIPE:
        return subprocess.PIPE
    if slot == INHERIT:
        return None
    if slot == IGNORE:
        return subprocess.DEVNULL
    return slot
