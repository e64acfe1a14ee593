from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any


class TaskGraphError(Exception):
    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        super().__init__(*args, **kwargs)


##
## GRAPH RESOLUTION
##


class GraphResolutionError(TaskGraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class CyclicTaskGraphError(GraphResolutionError):
    def __init__(self, cycles: list[tuple[str, ...]]) -> None:
        self.cycles = cycles
        cycle_str = "\n  ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(
            "Task graphs cannot contain dependency cycles. Offending cycles:\n"
            f"  {cycle_str}"
        )


##
## TASK TYPES
##


class UnknownTaskTypeError(TaskGraphError):
    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(
            f"Task type '{task_type}' is not registered."
            " Register it with `TaskTypeRegistry.register` first."
        )


##
## SNAPSHOTS
##


class SnapshotError(TaskGraphError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class UnserializableSnapshotError(SnapshotError):
    def __init__(self, value: "Any") -> None:
        super().__init__(f"{value!r} is not a serializable task snapshot.")


class TamperedSnapshotError(SnapshotError):
    def __init__(self) -> None:
        super().__init__("Deserialization failed due to signature mismatch.")


class CorruptSnapshotError(SnapshotError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Task snapshot is inconsistent: {message}")
