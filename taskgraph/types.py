import warnings
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, NonNegativeInt

from .exceptions import CyclicTaskGraphError, UnknownTaskTypeError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator


class TaskState(StrEnum):
    PENDING = "pending"
    READY = "ready"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.FAILED})


class TaskPriority(IntEnum):
    """Named priority ordinals. Lower values are handed out first."""

    CRITICAL = 1
    HIGH = 2
    NORMAL = 3
    LOW = 4


class TaskTypeRegistry:
    """
    The set of task types a queue accepts. Types are opaque to the scheduler; the
    registry only guards against typos and unknown work reaching the queue.
    """

    def __init__(self, *task_types: str) -> None:
        self._types: dict[str, str | None] = {}

        for task_type in task_types:
            self.register(task_type)

    def register(self, task_type: str, description: str | None = None) -> None:
        if not task_type or not task_type.strip():
            raise ValueError("task type is required")

        if task_type in self._types:
            warnings.warn(
                f"Task type '{task_type}' is already registered. This will override"
                " its description.",
                stacklevel=2,
            )

        self._types[task_type] = description

    def describe(self, task_type: str) -> str | None:
        return self._types[self.validate(task_type)]

    def validate(self, task_type: str) -> str:
        if task_type not in self._types:
            raise UnknownTaskTypeError(task_type)

        return task_type

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._types

    def __iter__(self) -> "Iterator[str]":
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)


@dataclass(kw_only=True, slots=True)
class ResolutionResult:
    execution_order: list[str] = field(default_factory=list)
    ready_tasks: list[str] = field(default_factory=list)
    blocked_tasks: list[str] = field(default_factory=list)
    has_circular_dependency: bool = False
    circular_dependencies: list[str] = field(default_factory=list)
    cycles: list[tuple[str, ...]] = field(default_factory=list)

    def raise_for_cycles(self) -> None:
        if self.has_circular_dependency:
            raise CyclicTaskGraphError(
                self.cycles or [tuple(self.circular_dependencies)]
            )


class QueueStats(BaseModel):
    total: NonNegativeInt = 0
    pending: NonNegativeInt = 0
    ready: NonNegativeInt = 0
    blocked: NonNegativeInt = 0
    completed: NonNegativeInt = 0
    failed: NonNegativeInt = 0
    assigned: NonNegativeInt = 0

    model_config = ConfigDict(frozen=True)
