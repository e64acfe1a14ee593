from abc import ABC, abstractmethod
from hashlib import blake2b
from hmac import compare_digest
from threading import local as thread_context
from typing import TYPE_CHECKING, final

from pydantic_core import PydanticSerializationError, from_json, to_json
from zstandard import ZstdCompressor, ZstdDecompressor, ZstdError

from .exceptions import TamperedSnapshotError, UnserializableSnapshotError

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any, ClassVar


class Serializer(ABC):
    @abstractmethod
    def serialize(self, value: "Any") -> bytes:
        """Serialize a value to a bytestream."""
        raise NotImplementedError()

    @abstractmethod
    def deserialize(self, data: bytes) -> "Any":
        """Deserialize a bytestream produced by `serialize`."""
        raise NotImplementedError()

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        """Compress a bytestream for storage."""
        raise NotImplementedError()

    @abstractmethod
    def decompress(self, data: bytes) -> bytes:
        """Decompress a bytestream from storage."""
        raise NotImplementedError()

    @final
    def dump(self, value: "Any") -> bytes:
        """Serialize and compress a value into a bytestream for storage."""
        try:
            return self.compress(self.serialize(value))
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise UnserializableSnapshotError(value) from e

    @final
    def load(self, data: bytes) -> "Any":
        """Deserialize and decompress a bytestream from storage."""
        return self.deserialize(self.decompress(data))


class JsonZstdSerializer(Serializer):
    """
    JSON snapshots, zstd compressed and prefixed with a keyed blake2b signature so
    edited or truncated files are rejected instead of half-loaded.
    """

    # Zstd is not thread safe so we should ensure a unique instance per thread
    _thread_context: "ClassVar[thread_context]" = thread_context()

    def __init__(self, secret: str, level: int = 3) -> None:
        super().__init__()
        self.secret_key: bytes = secret.encode()
        self.level = level

    def serialize(self, value: "Any") -> bytes:
        return to_json(value)

    def deserialize(self, data: bytes) -> "Any":
        try:
            return from_json(data)
        except ValueError as e:
            raise TamperedSnapshotError() from e

    @property
    def compressor(self) -> "ZstdCompressor":
        if not hasattr(self._thread_context, "compressors"):
            self._thread_context.compressors = {}

        compressors: dict[int, ZstdCompressor] = self._thread_context.compressors
        if self.level not in compressors:
            compressors[self.level] = ZstdCompressor(level=self.level)

        return compressors[self.level]

    @property
    def decompressor(self) -> "ZstdDecompressor":
        if not hasattr(self._thread_context, "decompressor"):
            self._thread_context.decompressor = ZstdDecompressor()

        return self._thread_context.decompressor

    def _sign(self, data: bytes) -> bytes:
        signer = blake2b(digest_size=16, key=self.secret_key, usedforsecurity=True)
        signer.update(data)
        return signer.hexdigest().encode()

    def compress(self, data: bytes) -> bytes:
        compressed = self.compressor.compress(data)
        return self._sign(compressed) + b"|" + compressed

    def decompress(self, data: bytes) -> bytes:
        try:
            signature, compressed = data.split(b"|", 1)
            if not compare_digest(self._sign(compressed), signature):
                raise TamperedSnapshotError()

            return self.decompressor.decompress(compressed)
        except (ValueError, ZstdError) as e:
            raise TamperedSnapshotError() from e
