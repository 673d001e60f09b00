"""Spawn exception classes.

Awaiting a SpawnPromise raises one of these when the outcome is a failure.
The failure outcome is available as ``.outcome``; its fields (code, signal,
stdout, stderr and any extra fields) can also be read directly off the error.
``message`` and ``reason`` on the error always describe the failure itself,
even when a caller extra field replaced them on the outcome.
"""

from __future__ import annotations

from typing import Any, ClassVar

from .types import FailureReason, SpawnFailure

__all__ = [
    "SpawnError",
    "SpawnLaunchError",
    "SpawnStreamError",
    "CommandFailedError",
    "error_for",
]


class SpawnError(Exception):
    """Base class for spawn failures.

    Attributes:
        outcome: The failure outcome
        reason: Why the spawn failed
    """

    reason: ClassVar[FailureReason | None] = None

    def __init__(self, outcome: SpawnFailure, message: str | None = None) -> None:
        self.outcome = outcome
        super().__init__(outcome.message if message is None else message)

    @property
    def message(self) -> str:
        return self.args[0]

    def __getattr__(self, name: str) -> Any:
        outcome = self.__dict__.get("outcome")
        if outcome is None or name.startswith("__"):
            raise AttributeError(name)
        try:
            return getattr(outcome, name)
        except AttributeError:
            raise AttributeError(
                f"{type(self).__name__!r} object has no attribute {name!r}"
            ) from None

    def __reduce__(self):
        return (type(self), (self.outcome, self.message))


class SpawnLaunchError(SpawnError):
    """The executable could not be started."""

    reason = FailureReason.LAUNCH


class SpawnStreamError(SpawnError):
    """A piped output stream failed while the command was running."""

    reason = FailureReason.STREAM


class CommandFailedError(SpawnError):
    """The command exited with a non-zero code or was killed by a signal."""

    reason = FailureReason.EXIT


_ERRORS_BY_REASON: dict[FailureReason, type[SpawnError]] = {
    error.reason: error
    for error in (SpawnLaunchError, SpawnStreamError, CommandFailedError)
}


def error_for(
    outcome: SpawnFailure,
    reason: FailureReason | None = None,
    message: str | None = None,
) -> SpawnError:
    """Build the exception matching a failure.

    Args:
        outcome: The failure outcome
        reason: Failure reason (default: outcome.reason)
        message: Failure message (default: outcome.message)
    """
    return _ERRORS_BY_REASON[reason or outcome.reason](outcome, message)
