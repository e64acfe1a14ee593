"""
Dependency-aware task queue.

The queue owns the task collection. It validates structure before committing any
change, hands ready work to workers and cascades completion and failure to
dependents. Expected outcomes (unknown ids, duplicates, cycles, ownership
mismatches) are reported through return values, never raised.
"""

import logging
from collections import ChainMap, deque
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .config import Config
from .exceptions import CorruptSnapshotError
from .resolver import DependencyResolver
from .serialization import JsonZstdSerializer
from .task import Task
from .types import QueueStats, TaskPriority

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Collection, Iterable, Iterator
    from typing import Any

    from .serialization import Serializer
    from .store import TaskStore
    from .types import ResolutionResult, TaskTypeRegistry

logger = logging.getLogger(__name__)


class DependencyTaskQueue:
    def __init__(
        self,
        store: "TaskStore | None" = None,
        registry: "TaskTypeRegistry | None" = None,
        serializer: "Serializer | None" = None,
        **settings: "Any",
    ) -> None:
        self.config = Config(**settings)

        self.store = store
        self.registry = registry
        self.serializer: "Serializer" = serializer or JsonZstdSerializer(
            self.config.serialization_secret, level=self.config.compression_level
        )
        self.resolver = DependencyResolver()

        self._tasks: dict[str, Task] = {}

    @staticmethod
    def _reject(operation: str, task_id: str, reason: str) -> bool:
        logger.debug("%s rejected task_id=%s: %s", operation, task_id, reason)
        return False

    ##
    ## STRUCTURE
    ##

    def add_task(self, task: Task) -> bool:
        """
        Insert a task whose dependencies are already queued. Nothing is changed when
        the task is rejected.
        """
        if task.id in self._tasks:
            return self._reject("add_task", task.id, "duplicate id")
        if self.registry is not None and task.type not in self.registry:
            return self._reject("add_task", task.id, f"unknown type '{task.type}'")
        if not task.is_pending():
            return self._reject("add_task", task.id, f"task is {task.state}")
        if task.is_assigned():
            return self._reject("add_task", task.id, "task is assigned")
        if task.dependents:
            return self._reject("add_task", task.id, "declares dependents")
        if missing := [dep for dep in task.dependencies if dep not in self._tasks]:
            return self._reject("add_task", task.id, f"unknown dependencies {missing}")

        candidate = ChainMap({task.id: task}, self._tasks)
        for dep_id in task.dependencies:
            if self.resolver.would_create_cycle(candidate, dep_id, task.id):
                return self._reject("add_task", task.id, f"cycle through '{dep_id}'")

        self._tasks[task.id] = task
        for dep_id in task.dependencies:
            self._tasks[dep_id].add_dependent(task.id)

        logger.debug(
            "Task added task_id=%s type=%s priority=%s dependencies=%s",
            task.id,
            task.type,
            task.priority,
            task.dependencies,
        )
        return True

    def create_task(
        self,
        task_id: str,
        task_type: str,
        target_id: str,
        current_tick: int,
        *,
        priority: int = TaskPriority.NORMAL,
        dependencies: "Iterable[str]" = (),
        parent_id: str | None = None,
        ttl: int | None = None,
    ) -> Task | None:
        """Build a task living `ttl` ticks from now and submit it with `add_task`."""
        if ttl is None:
            ttl = self.config.default_task_ttl

        task = Task(
            id=task_id,
            type=task_type,
            target_id=target_id,
            priority=priority,
            parent_id=parent_id,
            dependencies=list(dependencies),
            created_at=current_tick,
            expires_at=current_tick + ttl,
        )

        return task if self.add_task(task) else None

    def remove_task(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return self._reject("remove_task", task_id, "unknown id")

        for dep_id in task.dependencies:
            if (dep := self._tasks.get(dep_id)) is not None:
                dep.remove_dependent(task_id)

        for dependent_id in task.dependents:
            if (dependent := self._tasks.get(dependent_id)) is not None:
                dependent.remove_dependency(task_id)

        del self._tasks[task_id]
        return True

    def add_dependency(self, task_id: str, dependency_id: str) -> bool:
        """Make one queued task a prerequisite of another, unless that closes a cycle."""
        task = self._tasks.get(task_id)
        dep = self._tasks.get(dependency_id)

        if task is None or dep is None:
            return self._reject("add_dependency", task_id, "unknown id")
        if task_id == dependency_id:
            return self._reject("add_dependency", task_id, "self dependency")
        if dependency_id in task.dependencies:
            return True
        if task.is_terminal():
            return self._reject("add_dependency", task_id, f"task is {task.state}")
        if task.is_assigned():
            return self._reject("add_dependency", task_id, "task is assigned")
        if self.resolver.would_create_cycle(self._tasks, dependency_id, task_id):
            return self._reject(
                "add_dependency", task_id, f"cycle through '{dependency_id}'"
            )

        task.add_dependency(dependency_id)
        dep.add_dependent(task_id)

        # a ready task has to wait again for its new prerequisite
        if task.is_ready() and not dep.is_completed():
            task.mark_pending()

        self.resolver.update_task_states(self._tasks)
        return True

    def remove_dependency(self, task_id: str, dependency_id: str) -> bool:
        task = self._tasks.get(task_id)
        dep = self._tasks.get(dependency_id)

        if task is None or dep is None or dependency_id not in task.dependencies:
            return self._reject("remove_dependency", task_id, "unknown edge")

        task.remove_dependency(dependency_id)
        dep.remove_dependent(task_id)

        self.resolver.update_task_states(self._tasks)
        return True

    ##
    ## LOOKUPS
    ##

    def get_task(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def get_worker_task(self, worker_id: str) -> Task | None:
        """The task currently assigned to a worker, if any."""
        for task in self._tasks.values():
            if task.assigned_worker == worker_id:
                return task

        return None

    def get_ready_tasks(self, current_tick: int) -> list[Task]:
        """
        Unassigned, unexpired READY tasks, most urgent first. Equal priorities are
        ordered by creation tick and then by insertion order.
        """
        self.resolver.update_task_states(self._tasks)

        ready = [
            task
            for task in self._tasks.values()
            if task.is_ready()
            and not task.is_expired(current_tick)
            and not task.is_assigned()
        ]
        return sorted(ready, key=lambda task: (task.priority, task.created_at))

    ##
    ## WORKERS
    ##

    def assign_task(self, worker_id: str, current_tick: int) -> Task | None:
        ready = self.get_ready_tasks(current_tick)
        if not ready:
            return None

        task = ready[0]
        task.assign(worker_id)

        logger.debug("Task assigned task_id=%s worker=%s", task.id, worker_id)
        return task

    def complete_task(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return self._reject("complete_task", task_id, "unknown id")

        self.resolver.update_task_states(self._tasks)
        if not task.is_ready():
            return self._reject("complete_task", task_id, f"task is {task.state}")

        task.mark_completed()
        task.unassign()

        self.resolver.update_task_states(self._tasks)
        return True

    def fail_task(self, task_id: str) -> bool:
        """Fail (or cancel) a task and block everything downstream of it."""
        task = self._tasks.get(task_id)
        if task is None:
            return self._reject("fail_task", task_id, "unknown id")
        if task.is_terminal():
            return self._reject("fail_task", task_id, f"task is {task.state}")

        task.mark_failed()
        task.unassign()

        self.resolver.update_task_states(self._tasks)
        return True

    def retry_task(self, task_id: str) -> bool:
        """
        Put a failed task back to PENDING and unblock what it blocked. Downstream
        tasks still depending on other failed work end up BLOCKED again.
        """
        task = self._tasks.get(task_id)
        if task is None:
            return self._reject("retry_task", task_id, "unknown id")
        if not task.is_failed():
            return self._reject("retry_task", task_id, f"task is {task.state}")

        task.mark_pending()

        downstream = deque(task.dependents)
        seen: set[str] = set()
        while downstream:
            dependent_id = downstream.popleft()
            if dependent_id in seen:
                continue
            seen.add(dependent_id)

            dependent = self._tasks.get(dependent_id)
            if dependent is not None and dependent.is_blocked():
                dependent.mark_pending()
                downstream.extend(dependent.dependents)

        self.resolver.update_task_states(self._tasks)
        return True

    def release_task(self, task_id: str, worker_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return self._reject("release_task", task_id, "unknown id")
        if task.assigned_worker != worker_id:
            return self._reject(
                "release_task", task_id, f"not assigned to worker '{worker_id}'"
            )

        task.unassign()
        return True

    ##
    ## GARBAGE COLLECTION
    ##

    def cleanup_expired_tasks(self, current_tick: int) -> int:
        """Remove expired tasks. Tasks still held by a worker are kept."""
        expired = [
            task.id
            for task in self._tasks.values()
            if task.is_expired(current_tick) and not task.is_assigned()
        ]

        removed = sum(1 for task_id in expired if self.remove_task(task_id))
        if removed:
            logger.info("Removed %s expired task(s) at tick %s", removed, current_tick)

        return removed

    def cleanup_dead_worker_tasks(self, alive_worker_ids: "Collection[str]") -> int:
        """Release every assignment held by a worker missing from `alive_worker_ids`."""
        alive = set(alive_worker_ids)
        released = 0

        for task in self._tasks.values():
            if task.is_assigned() and task.assigned_worker not in alive:
                logger.debug(
                    "Releasing task_id=%s from dead worker=%s",
                    task.id,
                    task.assigned_worker,
                )
                task.unassign()
                released += 1

        return released

    ##
    ## INSPECTION
    ##

    def resolve_all(self) -> "ResolutionResult":
        return self.resolver.resolve(self._tasks)

    def get_stats(self) -> QueueStats:
        return QueueStats(
            total=len(self._tasks),
            pending=sum(task.is_pending() for task in self._tasks.values()),
            ready=sum(task.is_ready() for task in self._tasks.values()),
            blocked=sum(task.is_blocked() for task in self._tasks.values()),
            completed=sum(task.is_completed() for task in self._tasks.values()),
            failed=sum(task.is_failed() for task in self._tasks.values()),
            assigned=sum(task.is_assigned() for task in self._tasks.values()),
        )

    def clear(self) -> None:
        self._tasks.clear()

    def size(self) -> int:
        return len(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> "Iterator[Task]":
        return iter(list(self._tasks.values()))

    ##
    ## SNAPSHOTS
    ##

    def snapshot(self) -> list[dict[str, "Any"]]:
        return [task.serialize() for task in self._tasks.values()]

    def restore(self, records: "Any") -> int:
        """
        Replace the collection with the tasks in `records`. The records are checked
        as a whole first; the queue is left untouched if any check fails.
        """
        if not isinstance(records, list):
            raise CorruptSnapshotError("expected a list of task records")

        tasks: dict[str, Task] = {}
        for record in records:
            try:
                task = Task.deserialize(record)
            except ValidationError as e:
                raise CorruptSnapshotError(str(e)) from e

            if task.id in tasks:
                raise CorruptSnapshotError(f"duplicate task id '{task.id}'")
            if self.registry is not None:
                self.registry.validate(task.type)

            tasks[task.id] = task

        for task in tasks.values():
            for dep_id in task.dependencies:
                if dep_id not in tasks:
                    raise CorruptSnapshotError(
                        f"task '{task.id}' depends on unknown task '{dep_id}'"
                    )
                if task.id not in tasks[dep_id].dependents:
                    raise CorruptSnapshotError(
                        f"task '{dep_id}' does not list dependent '{task.id}'"
                    )

            for dependent_id in task.dependents:
                if dependent_id not in tasks:
                    raise CorruptSnapshotError(
                        f"task '{task.id}' lists unknown dependent '{dependent_id}'"
                    )
                if task.id not in tasks[dependent_id].dependencies:
                    raise CorruptSnapshotError(
                        f"task '{dependent_id}' does not depend on '{task.id}'"
                    )

        # a ready task whose prerequisites have not all completed waits again
        for task in tasks.values():
            if task.is_ready() and not all(
                tasks[dep_id].is_completed() for dep_id in task.dependencies
            ):
                task.mark_pending()

        self.resolver.resolve(tasks).raise_for_cycles()

        self._tasks = tasks
        return len(tasks)

    def save(self) -> bool:
        if self.store is None:
            return False

        self.store.write(self.serializer.dump(self.snapshot()))

        logger.info("Saved %s task(s)", len(self._tasks))
        return True

    def load(self) -> int:
        """Restore the collection from the store, returning the number of tasks."""
        if self.store is None:
            return 0

        data = self.store.read()
        if data is None:
            return 0

        loaded = self.restore(self.serializer.load(data))

        logger.info("Loaded %s task(s)", loaded)
        return loaded
