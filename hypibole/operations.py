"""Operation requests and outcomes for hypibole."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class Level(Enum):
    """Binary logical state of a line."""

    LOW = "low"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Level":
        """Parse wire text into a Level (raises ValueError)."""
        if isinstance(value, Level):
            return value
        for level in cls:
            if level.value == value:
                return level
        raise ValueError(f'Unrecognized level parameter: "{value}"')

    @classmethod
    def from_int(cls, raw: int) -> "Level":
        return cls.HIGH if raw else cls.LOW


class Direction(Enum):
    INPUT = "input"
    OUTPUT = "output"


class Operation(Enum):
    """Closed set of board operations."""

    GET = "get"
    SET = "set"

    @classmethod
    def parse(cls, value: Any) -> "Operation":
        for op in cls:
            if op.value == value:
                return op
        raise ValueError(f'Unrecognized operation parameter: "{value}"')

    @property
    def direction(self) -> Direction:
        """Line direction this operation needs."""
        return Direction.INPUT if self is Operation.GET else Direction.OUTPUT


class FailureKind(Enum):
    VALIDATION = "validation"
    RESOLUTION = "resolution"
    HARDWARE = "hardware"
    LIFECYCLE = "lifecycle"


@dataclass(frozen=True)
class OperationRequest:
    """Normalized request handed to the executor by the transport.

    ``level`` is the caller's raw text and only matters for SET.
    """

    pin: Any
    operation: Operation
    level: Optional[Any] = None


@dataclass(frozen=True)
class Success:
    operation: Operation
    pin: str
    level: Level

    ok = True


@dataclass(frozen=True)
class Failure:
    message: str
    kind: FailureKind = FailureKind.HARDWARE

    ok = False


Outcome = Union[Success, Failure]
