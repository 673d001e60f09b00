"""Spawn request and outcome types.

SpawnOptions describes how to launch a child process. SpawnSuccess and
SpawnFailure are the two variants of the single outcome produced per spawn;
both carry the same diagnostic fields plus any caller-supplied extra fields.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Literal, NamedTuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from .stdio import PIPE, StdioOption

__all__ = [
    "SpawnOptions",
    "ExitStatus",
    "FailureReason",
    "SpawnSuccess",
    "SpawnFailure",
    "SpawnOutcome",
    "RESERVED_FIELDS",
]

# Outcome fields that extra fields can never replace. Every other outcome
# field (command, args, process, message, reason) yields to a caller key.
RESERVED_FIELDS = frozenset({"kind", "code", "signal", "stdout", "stderr"})

# Option names accepted in their camelCase spelling
_OPTION_ALIASES = {"stdioString": "stdio_string"}


@dataclass(frozen=True)
class SpawnOptions:
    """Options for a single spawn.

    Attributes:
        cwd: Working directory for the child (None = inherit)
        env: Complete environment for the child (None = inherit parent)
        uid: User id to run the child as (POSIX only)
        gid: Group id to run the child as (POSIX only)
        stdio: Stdio mode, see promise_spawn.stdio
        stdio_string: Decode accumulated stdout/stderr to str
        encoding: Text encoding for stdio_string (None = configured default)
    """

    cwd: str | os.PathLike[str] | None = None
    env: Mapping[str, str] | None = None
    uid: int | None = None
    gid: int | None = None
    stdio: StdioOption = PIPE
    stdio_string: bool = False
    encoding: str | None = None

    @classmethod
    def coerce(cls, options: "SpawnOptions | Mapping[str, Any] | None") -> "SpawnOptions":
        """Accept SpawnOptions, a plain mapping of the same keys, or None.

        Raises:
            ValueError: Unknown option name
        """
        if options is None:
            return cls()
        if isinstance(options, SpawnOptions):
            return options

        names = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in names:
                raise ValueError(
                    f"Unknown spawn option: {key!r} (expected one of {sorted(names)})"
                )
            values[name] = value
        return cls(**values)


class ExitStatus(NamedTuple):
    """Final exit values of a child process.

    At true termination exactly one of code/signal is set.
    """

    code: int | None = None
    signal: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.code == 0 and self.signal is None


class FailureReason(str, Enum):
    """Why a spawn failed.

    - LAUNCH: the executable never started
    - STREAM: a piped output stream raised an error
    - EXIT: non-zero exit code or termination by signal
    """

    LAUNCH = "launch"
    STREAM = "stream"
    EXIT = "exit"


_Outcome = TypeVar("_Outcome", bound="_OutcomeBase")


class _OutcomeBase(BaseModel):
    """Fields shared by both outcome variants.

    Extra fields passed to spawn() are stored as additional attributes.
    """

    model_config = ConfigDict(
        extra="allow",
        frozen=True,
        arbitrary_types_allowed=True,
    )

    command: str
    args: list[str] = Field(default_factory=list)
    code: int | None = None
    signal: str | None = None
    stdout: bytes | str | None = None
    stderr: bytes | str | None = None
    process: Any = Field(default=None, exclude=True, repr=False)

    _extra_keys: tuple[str, ...] = PrivateAttr(default=())

    @classmethod
    def merged(
        cls: type[_Outcome],
        values: Mapping[str, Any],
        extra: Mapping[str, Any],
    ) -> _Outcome:
        """Build an outcome from the coordinator's values and caller extra fields.

        Caller keys replace any field except the reserved ones, and are stored
        unchanged. Values are not validated.
        """
        merged = dict(values)
        keys = []
        for key, value in extra.items():
            if key in RESERVED_FIELDS:
                continue
            merged[key] = value
            keys.append(key)
        outcome = cls.model_construct(**merged)
        outcome._extra_keys = tuple(keys)
        return outcome

    @property
    def extra(self) -> dict[str, Any]:
        """Caller-supplied extra fields merged into this outcome."""
        extras = self.model_extra or {}
        keys = dict.fromkeys([*self._extra_keys, *extras])
        return {key: extras[key] if key in extras else getattr(self, key) for key in keys}


class SpawnSuccess(_OutcomeBase):
    """The command exited with code 0 and no signal."""

    kind: Literal["success"] = "success"


class SpawnFailure(_OutcomeBase):
    """The command could not be launched, a stream failed, or it exited abnormally."""

    kind: Literal["failure"] = "failure"
    message: str
    reason: FailureReason


SpawnOutcome = Union[SpawnSuccess, SpawnFailure]
