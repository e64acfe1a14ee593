import pytest

from taskgraph import (
    DependencyTaskQueue,
    FileTaskStore,
    JsonZstdSerializer,
    MemoryTaskStore,
    TaskState,
    TaskTypeRegistry,
)
from taskgraph.exceptions import (
    CorruptSnapshotError,
    CyclicTaskGraphError,
    TamperedSnapshotError,
    UnknownTaskTypeError,
    UnserializableSnapshotError,
)


@pytest.fixture
def serializer() -> JsonZstdSerializer:
    return JsonZstdSerializer("secret")


##
## SERIALIZATION
##


def test_serializer_round_trip(serializer):
    value = [{"id": "a", "dependencies": [], "assignedWorker": "worker-1"}]

    assert serializer.load(serializer.dump(value)) == value


def test_serializer_rejects_unserializable_values(serializer):
    with pytest.raises(UnserializableSnapshotError):
        serializer.dump([object()])


@pytest.mark.parametrize(
    "tamper",
    (
        lambda data: data[:-1] + bytes([data[-1] ^ 0xFF]),
        lambda data: data.replace(b"|", b"", 1),
        lambda data: b"",
    ),
    ids=("flipped", "unsigned", "empty"),
)
def test_serializer_rejects_tampered_data(serializer, tamper):
    data = serializer.dump([{"id": "a"}])

    with pytest.raises(TamperedSnapshotError):
        serializer.load(tamper(data))


def test_serializer_rejects_foreign_secret(serializer):
    data = JsonZstdSerializer("another-secret").dump([])

    with pytest.raises(TamperedSnapshotError):
        serializer.load(data)


##
## STORES
##


def test_memory_store():
    store = MemoryTaskStore()
    assert store.read() is None

    store.write(b"data")
    assert store.read() == b"data"

    store.clear()
    assert store.read() is None


def test_file_store(tmp_path):
    store = FileTaskStore(tmp_path / "nested" / "tasks.snapshot")
    assert store.read() is None

    store.write(b"first")
    store.write(b"second")
    assert store.read() == b"second"
    assert [p.name for p in store.path.parent.iterdir()] == ["tasks.snapshot"]

    store.clear()
    store.clear()
    assert store.read() is None


##
## QUEUE CHECKPOINTS
##


def test_save_and_load(tmp_path, make_task, current_tick):
    store = FileTaskStore(tmp_path / "tasks.snapshot")
    queue = DependencyTaskQueue(store=store)
    for task in (make_task("a"), make_task("b", "a"), make_task("c", "b")):
        queue.add_task(task)
    queue.assign_task("worker-1", current_tick)

    assert queue.save()

    restored = DependencyTaskQueue(store=store)
    assert restored.load() == 3

    assert restored.snapshot() == queue.snapshot()
    assert restored.get_worker_task("worker-1").id == "a"
    assert restored.get_task("b").dependents == ["c"]
    assert restored.get_task("a") is not queue.get_task("a")


def test_load_continues_scheduling(make_task, current_tick):
    store = MemoryTaskStore()
    queue = DependencyTaskQueue(store=store)
    queue.add_task(make_task("a"))
    queue.add_task(make_task("b", "a"))
    queue.complete_task("a")
    queue.save()

    restored = DependencyTaskQueue(store=store)
    restored.load()

    assert [task.id for task in restored.get_ready_tasks(current_tick)] == ["b"]


def test_checkpoints_without_store(queue, make_task):
    queue.add_task(make_task("a"))

    assert not queue.save()
    assert queue.load() == 0
    assert queue.size() == 1


def test_load_from_empty_store(make_task):
    queue = DependencyTaskQueue(store=MemoryTaskStore())
    queue.add_task(make_task("a"))

    assert queue.load() == 0
    assert queue.size() == 1


def test_load_rejects_foreign_secret(make_task):
    store = MemoryTaskStore()
    queue = DependencyTaskQueue(store=store, serialization_secret="one")
    queue.add_task(make_task("a"))
    queue.save()

    with pytest.raises(TamperedSnapshotError):
        DependencyTaskQueue(store=store, serialization_secret="two").load()


def _records(*tasks):
    return [task.serialize() for task in tasks]


def test_restore_rejects_non_list(queue):
    with pytest.raises(CorruptSnapshotError, match="list of task records"):
        queue.restore({"id": "a"})


def test_restore_rejects_invalid_records(queue, make_task):
    record = make_task("a").serialize()
    del record["targetId"]

    with pytest.raises(CorruptSnapshotError):
        queue.restore([record])


def test_restore_rejects_duplicate_ids(queue, make_task):
    with pytest.raises(CorruptSnapshotError, match="duplicate"):
        queue.restore(_records(make_task("a"), make_task("a")))


def test_restore_rejects_unknown_references(queue, make_task):
    with pytest.raises(CorruptSnapshotError, match="unknown task 'x'"):
        queue.restore(_records(make_task("a", "x")))

    dangling = make_task("a")
    dangling.add_dependent("x")
    with pytest.raises(CorruptSnapshotError, match="unknown dependent 'x'"):
        queue.restore(_records(dangling))


def test_restore_rejects_asymmetric_edges(queue, make_task):
    with pytest.raises(CorruptSnapshotError, match="does not list dependent"):
        queue.restore(_records(make_task("a"), make_task("b", "a")))

    a = make_task("a")
    a.add_dependent("b")
    with pytest.raises(CorruptSnapshotError, match="does not depend on"):
        queue.restore(_records(a, make_task("b")))


def test_restore_rejects_cycles(queue, make_task):
    a, b = make_task("a", "b"), make_task("b", "a")
    a.add_dependent("b")
    b.add_dependent("a")

    with pytest.raises(CyclicTaskGraphError):
        queue.restore(_records(a, b))


def test_failed_restore_leaves_queue_untouched(queue, make_task):
    queue.add_task(make_task("a"))

    with pytest.raises(CorruptSnapshotError):
        queue.restore(_records(make_task("b", "x")))

    assert [task.id for task in queue] == ["a"]


def test_restore_checks_registry(make_task):
    queue = DependencyTaskQueue(registry=TaskTypeRegistry("upgrade"))

    with pytest.raises(UnknownTaskTypeError):
        queue.restore(_records(make_task("a")))


def test_restore_refreshes_states(queue, make_task):
    a, b = make_task("a"), make_task("b", "a")
    a.add_dependent("b")
    a.mark_failed()

    assert queue.restore(_records(a, b)) == 2

    assert queue.get_task("b").state is TaskState.BLOCKED


def test_restore_sends_premature_ready_tasks_back_to_pending(queue, make_task, current_tick):
    a, b = make_task("a"), make_task("b", "a", state=TaskState.READY)
    a.add_dependent("b")

    assert queue.restore(_records(a, b)) == 2

    assert queue.get_task("b").state is TaskState.PENDING
    assert [task.id for task in queue.get_ready_tasks(current_tick)] == ["a"]

    queue.complete_task("a")
    assert [task.id for task in queue.get_ready_tasks(current_tick)] == ["b"]


##
## CONFIG & REGISTRY
##


def test_config_from_environment(monkeypatch):
    monkeypatch.setenv("TASKGRAPH_DEFAULT_TASK_TTL", "42")

    assert DependencyTaskQueue().config.default_task_ttl == 42


@pytest.mark.parametrize(
    "settings",
    ({"default_task_ttl": 0}, {"compression_level": 0}, {"compression_level": 23}),
)
def test_config_validation(settings):
    with pytest.raises(ValueError):
        DependencyTaskQueue(**settings)


def test_registry():
    registry = TaskTypeRegistry("harvest")
    registry.register("upgrade", "Upgrade the controller")

    assert "harvest" in registry
    assert list(registry) == ["harvest", "upgrade"]
    assert len(registry) == 2
    assert registry.describe("upgrade") == "Upgrade the controller"
    assert registry.validate("harvest") == "harvest"

    with pytest.raises(UnknownTaskTypeError, match="'build'"):
        registry.validate("build")

    with pytest.raises(ValueError):
        registry.register("  ")


def test_registry_warns_on_override():
    registry = TaskTypeRegistry("harvest")

    with pytest.warns(UserWarning, match="already registered"):
        registry.register("harvest", "Harvest energy")

    assert registry.describe("harvest") == "Harvest energy"
