import pytest

from taskgraph import DependencyTaskQueue, Task

CURRENT_TICK = 1000


@pytest.fixture
def current_tick() -> int:
    return CURRENT_TICK


@pytest.fixture
def make_task():
    def _make_task(task_id: str, *dependencies: str, **fields) -> Task:
        fields.setdefault("type", "harvest")
        fields.setdefault("target_id", f"target-{task_id}")
        fields.setdefault("created_at", CURRENT_TICK)
        fields.setdefault("expires_at", CURRENT_TICK + 100)
        return Task(id=task_id, dependencies=list(dependencies), **fields)

    return _make_task


@pytest.fixture
def queue() -> DependencyTaskQueue:
    return DependencyTaskQueue()


@pytest.fixture
def chain(queue, make_task) -> tuple[Task, Task, Task]:
    """A <- B <- C, inserted in dependency order."""
    a, b, c = make_task("a"), make_task("b", "a"), make_task("c", "b")

    for task in (a, b, c):
        assert queue.add_task(task)

    return a, b, c
