from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .types import TERMINAL_STATES, TaskPriority, TaskState

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Mapping
    from typing import Any


class Task(BaseModel):
    """
    A single schedulable unit of work.

    A task only knows its own edges. Keeping `dependents` the inverse of every other
    task's `dependencies` is the queue's job, as is cascading state changes.
    """

    id: str
    type: str
    target_id: str
    created_at: int
    expires_at: int
    priority: int = TaskPriority.NORMAL.value
    state: TaskState = TaskState.PENDING
    parent_id: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)
    assigned_worker: str | None = None

    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )

    @field_validator("dependencies", "dependents")
    @classmethod
    def unique_ids(cls, ids: list[str]) -> list[str]:
        return list(dict.fromkeys(ids))

    ## edges

    def add_dependency(self, task_id: str) -> None:
        if task_id not in self.dependencies:
            self.dependencies.append(task_id)

    def remove_dependency(self, task_id: str) -> None:
        self.dependencies = [dep for dep in self.dependencies if dep != task_id]

    def add_dependent(self, task_id: str) -> None:
        if task_id not in self.dependents:
            self.dependents.append(task_id)

    def remove_dependent(self, task_id: str) -> None:
        self.dependents = [dep for dep in self.dependents if dep != task_id]

    def has_dependencies(self) -> bool:
        return bool(self.dependencies)

    def has_dependents(self) -> bool:
        return bool(self.dependents)

    ## lifecycle

    def is_expired(self, current_tick: int) -> bool:
        return current_tick > self.expires_at

    def is_pending(self) -> bool:
        return self.state == TaskState.PENDING

    def is_ready(self) -> bool:
        return self.state == TaskState.READY

    def is_blocked(self) -> bool:
        return self.state == TaskState.BLOCKED

    def is_completed(self) -> bool:
        return self.state == TaskState.COMPLETED

    def is_failed(self) -> bool:
        return self.state == TaskState.FAILED

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def mark_pending(self) -> None:
        self.state = TaskState.PENDING

    def mark_ready(self) -> None:
        self.state = TaskState.READY

    def mark_blocked(self) -> None:
        self.state = TaskState.BLOCKED

    def mark_completed(self) -> None:
        self.state = TaskState.COMPLETED

    def mark_failed(self) -> None:
        self.state = TaskState.FAILED

    ## ownership

    def assign(self, worker_id: str) -> None:
        self.assigned_worker = worker_id

    def unassign(self) -> None:
        self.assigned_worker = None

    def is_assigned(self) -> bool:
        return self.assigned_worker is not None

    ## snapshots

    def serialize(self) -> dict[str, "Any"]:
        """Plain, JSON-compatible record of this task using camelCase keys."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"assigned_worker"} if self.assigned_worker is None else None,
        )

    @classmethod
    def deserialize(cls, record: "Mapping[str, Any]") -> "Task":
        return cls.model_validate(record)
