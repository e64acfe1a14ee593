from .config import Config
from .queue import DependencyTaskQueue
from .resolver import DependencyResolver
from .serialization import JsonZstdSerializer, Serializer
from .store import FileTaskStore, MemoryTaskStore, TaskStore
from .task import Task
from .topology import TaskGraph
from .types import (
    QueueStats,
    ResolutionResult,
    TaskPriority,
    TaskState,
    TaskTypeRegistry,
)

__all__ = [
    "Config",
    "DependencyTaskQueue",
    "DependencyResolver",
    "FileTaskStore",
    "JsonZstdSerializer",
    "MemoryTaskStore",
    "QueueStats",
    "ResolutionResult",
    "Serializer",
    "Task",
    "TaskGraph",
    "TaskPriority",
    "TaskState",
    "TaskStore",
    "TaskTypeRegistry",
]
