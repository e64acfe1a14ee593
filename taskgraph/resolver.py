"""
Graph algorithms over a task collection keyed by task id.

The resolver holds no state between calls. Every method takes the collection it
should operate on, and only `resolve` and `update_task_states` change tasks (their
`state`, nothing else).
"""

from collections import deque
from typing import TYPE_CHECKING

from .topology import TaskGraph
from .types import ResolutionResult, TaskState

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Mapping

    from .task import Task

    TaskCollection = Mapping[str, Task]

_UNSATISFIABLE = frozenset({TaskState.FAILED, TaskState.BLOCKED})


def _evaluate(task: "Task", tasks: "TaskCollection") -> TaskState | None:
    """
    The state a task's dependencies call for: BLOCKED when any of them failed or is
    blocked, READY when all of them completed, None while some are still underway.
    Dependencies missing from the collection are ignored.
    """
    all_completed = True

    for dep_id in task.dependencies:
        dep = tasks.get(dep_id)
        if dep is None:
            continue

        if dep.state in _UNSATISFIABLE:
            return TaskState.BLOCKED
        if dep.state != TaskState.COMPLETED:
            all_completed = False

    return TaskState.READY if all_completed else None


class DependencyResolver:
    def build_graph(self, tasks: "TaskCollection") -> TaskGraph:
        nodes: dict[str, "Task"] = dict(tasks)
        edges: dict[str, list[str]] = {task_id: [] for task_id in nodes}

        for task_id, task in nodes.items():
            dependents = edges[task_id]
            for dependent_id in task.dependents:
                if dependent_id not in dependents:
                    dependents.append(dependent_id)

        return TaskGraph(nodes=nodes, edges=edges)

    def resolve(self, tasks: "TaskCollection") -> ResolutionResult:
        """
        Topologically order the collection with Kahn's algorithm, refreshing the state
        of every pending or ready task as it is emitted. Tasks that are never emitted
        sit on (or behind) a dependency cycle.
        """
        graph = self.build_graph(tasks)
        result = ResolutionResult()

        in_degree: dict[str, int] = {
            task_id: sum(1 for dep_id in task.dependencies if dep_id in graph.nodes)
            for task_id, task in graph.nodes.items()
        }
        queue = deque(task_id for task_id, degree in in_degree.items() if degree == 0)

        while queue:
            task_id = queue.popleft()
            result.execution_order.append(task_id)

            task = graph.nodes[task_id]
            if task.state in (TaskState.PENDING, TaskState.READY):
                match _evaluate(task, graph.nodes):
                    case TaskState.BLOCKED:
                        task.mark_blocked()
                        result.blocked_tasks.append(task_id)
                    case TaskState.READY:
                        task.mark_ready()
                        result.ready_tasks.append(task_id)

            for dependent_id in graph.edges[task_id]:
                if dependent_id not in in_degree:
                    continue

                in_degree[dependent_id] -= 1
                if in_degree[dependent_id] == 0:
                    queue.append(dependent_id)

        if len(result.execution_order) != len(graph.nodes):
            emitted = set(result.execution_order)
            result.has_circular_dependency = True
            result.circular_dependencies = [
                task_id for task_id in graph.nodes if task_id not in emitted
            ]
            result.cycles = graph.find_cycles(set(result.circular_dependencies))

        return result

    def would_create_cycle(
        self, tasks: "TaskCollection", from_id: str, to_id: str
    ) -> bool:
        """
        Whether making `from_id` a dependency of `to_id` would close a cycle. The edge
        is only added for the duration of the search.
        """
        to_task = tasks.get(to_id)
        if to_task is None:
            return False

        def dependencies_of(task_id: str) -> "Iterable[str]":
            task = tasks.get(task_id)
            return iter(task.dependencies) if task is not None else iter(())

        original_dependencies = list(to_task.dependencies)
        to_task.add_dependency(from_id)

        try:
            visited: set[str] = {to_id}
            on_stack: set[str] = {to_id}
            path = [(to_id, dependencies_of(to_id))]

            while path:
                task_id, remaining = path[-1]

                for dep_id in remaining:
                    if dep_id in on_stack:
                        return True

                    if dep_id not in visited:
                        visited.add(dep_id)
                        on_stack.add(dep_id)
                        path.append((dep_id, dependencies_of(dep_id)))
                        break
                else:
                    on_stack.discard(task_id)
                    path.pop()

            return False
        finally:
            to_task.dependencies = original_dependencies

    def update_task_states(self, tasks: "TaskCollection") -> None:
        """
        Move pending tasks to READY or BLOCKED based on their dependencies, without a
        full topological sort. Blocking is followed through dependents, so one call
        settles the whole collection whatever its iteration order.
        """
        queue = deque(task for task in tasks.values() if task.is_pending())

        while queue:
            task = queue.popleft()
            if not task.is_pending():
                continue

            match _evaluate(task, tasks):
                case TaskState.BLOCKED:
                    task.mark_blocked()
                    queue.extend(
                        tasks[dependent_id]
                        for dependent_id in task.dependents
                        if dependent_id in tasks
                    )
                case TaskState.READY:
                    task.mark_ready()
