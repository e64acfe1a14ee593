"""
Persistence handles for queue snapshots.

A store only moves opaque bytes. Encoding, signing and validating snapshots is the
queue's concern, so any byte store (a file, a key in a shared cache, memory in tests)
can back a queue.
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)


class TaskStore(ABC):
    @abstractmethod
    def read(self) -> bytes | None:
        """Return the last written snapshot, or None if nothing was written yet."""
        raise NotImplementedError()

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Replace the stored snapshot."""
        raise NotImplementedError()

    @abstractmethod
    def clear(self) -> None:
        """Forget the stored snapshot."""
        raise NotImplementedError()


class MemoryTaskStore(TaskStore):
    def __init__(self, data: bytes | None = None) -> None:
        self._data = data

    def read(self) -> bytes | None:
        return self._data

    def write(self, data: bytes) -> None:
        self._data = data

    def clear(self) -> None:
        self._data = None


class FileTaskStore(TaskStore):
    """
    Snapshot kept in a single file. Writes go to a sibling temporary file that is
    then renamed over the target, so a crash mid-write leaves the previous snapshot
    intact.
    """

    def __init__(self, path: str | Path = "tasks.snapshot") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def read(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def write(self, data: bytes) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, self.path)
        logger.debug("Snapshot written path=%s bytes=%s", self.path, len(data))

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
