"""Object storage backed by files in a local directory."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from contextlib import suppress
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from .models import ReplicaInfo, StorageObject, utcnow

DataSource = Union[bytes, bytearray, memoryview, BinaryIO]

_CHUNK_SIZE = 64 * 1024
_LOCAL_NODE_ID = "node-1"


class StorageError(Exception):
    """Raised when the store cannot complete an operation."""


class ObjectNotFoundError(StorageError):
    """Raised when a key is not present in the store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"object not found: {key}")
        self.key = key


def _chunks(data: DataSource) -> Iterator[bytes]:
    if isinstance(data, (bytes, bytearray, memoryview)):
        if len(data):
            yield bytes(data)
        return
    while True:
        chunk = data.read(_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class FileStore:
    """Stores object contents as files and keeps their metadata in JSON."""

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        self.metadata_path = self.base_path / "metadata"
        self._objects: dict[str, StorageObject] = {}
        self._lock = threading.Lock()
        with suppress(OSError):
            self.base_path.mkdir(parents=True, exist_ok=True)
            self.metadata_path.mkdir(parents=True, exist_ok=True)
        self._load_metadata()

    @property
    def _metadata_file(self) -> Path:
        return self.metadata_path / "objects.json"

    def put(self, key: str, data: DataSource, content_type: str) -> StorageObject:
        """Store data under key, replacing any existing object with that key."""
        with self._lock:
            seed = f"{key}{time.time_ns()}".encode()
            object_id = hashlib.md5(seed, usedforsecurity=False).hexdigest()
            file_path = self.base_path / object_id

            try:
                handle = open(file_path, "wb")
            except OSError as exc:
                raise StorageError(f"failed to create file: {exc}") from exc

            hasher = hashlib.md5(usedforsecurity=False)
            size = 0
            try:
                with handle:
                    for chunk in _chunks(data):
                        handle.write(chunk)
                        hasher.update(chunk)
                        size += len(chunk)
            except OSError as exc:
                with suppress(OSError):
                    file_path.unlink()
                raise StorageError(f"failed to write data: {exc}") from exc

            now = utcnow()
            obj = StorageObject(
                id=object_id,
                key=key,
                size=size,
                content_type=content_type,
                checksum=hasher.hexdigest(),
                created_at=now,
                updated_at=now,
                access_count=0,
                last_access=now,
                storage_tier="hot",
                replicas=[
                    ReplicaInfo(
                        node_id=_LOCAL_NODE_ID,
                        file_path=str(file_path),
                        status="active",
                    )
                ],
            )
            self._objects[key] = obj
            self._save_metadata()
            return obj

    def get(self, key: str) -> tuple[BinaryIO, StorageObject]:
        """Open the object's contents and record the access.

        The caller owns the returned stream and must close it.
        """
        with self._lock:
            obj = self._objects.get(key)
            if obj is None:
                raise ObjectNotFoundError(key)

            obj.access_count += 1
            obj.last_access = utcnow()
            self._save_metadata()

            try:
                stream = open(obj.replicas[0].file_path, "rb")
            except (OSError, IndexError) as exc:
                raise StorageError(f"failed to open file: {exc}") from exc
            return stream, obj

    def delete(self, key: str) -> None:
        """Remove an object and all of its local files."""
        with self._lock:
            obj = self._objects.get(key)
            if obj is None:
                raise ObjectNotFoundError(key)
            for replica in obj.replicas:
                with suppress(OSError):
                    Path(replica.file_path).unlink()
            del self._objects[key]
            self._save_metadata()

    def list(self) -> dict[str, StorageObject]:
        """Return a snapshot mapping of key to object metadata."""
        with self._lock:
            return dict(self._objects)

    def _save_metadata(self) -> None:
        payload = {key: self._objects[key].to_dict() for key in sorted(self._objects)}
        with suppress(OSError):
            self._metadata_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _load_metadata(self) -> None:
        try:
            payload = json.loads(self._metadata_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return
        if not isinstance(payload, dict):
            return
        for key, value in payload.items():
            with suppress(ValueError):
                self._objects[key] = StorageObject.from_dict(value)