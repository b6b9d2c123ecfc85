"""Background replication of stored objects to other cluster nodes."""

from __future__ import annotations

import logging
import threading
import time
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, BinaryIO, Callable, Mapping, Union

from .cluster import ClusterManager, Node
from .models import StorageObject, format_time, utcnow

log = logging.getLogger(__name__)

DataSource = Union[bytes, bytearray, memoryview, BinaryIO]
Sender = Callable[[str, bytes, Mapping[str, str], float], int]


class ReplicationError(Exception):
    """Raised when replication cannot be started."""


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ReplicationTask:
    """Progress of copying one object to its target nodes."""

    object_id: str
    object_key: str
    source_node: str
    target_nodes: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "object_id": self.object_id,
            "object_key": self.object_key,
            "source_node": self.source_node,
            "target_nodes": list(self.target_nodes),
            "status": self.status.value,
            "created_at": format_time(self.created_at),
        }
        if self.completed_at is not None:
            data["completed_at"] = format_time(self.completed_at)
        if self.error:
            data["error"] = self.error
        return data


def _http_put(url: str, body: bytes, headers: Mapping[str, str], timeout: float) -> int:
    request = urllib.request.Request(url, data=body, headers=dict(headers), method="PUT")
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.status


def _read_all(data: DataSource) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    return data.read()


class ReplicationManager:
    """Copies objects to healthy nodes chosen by the cluster manager."""

    def __init__(
        self,
        cluster_manager: ClusterManager,
        replication_factor: int,
        *,
        sender: Sender | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.cluster_manager = cluster_manager
        self.replication_factor = replication_factor
        self._sender = sender or _http_put
        self._timeout = timeout
        self._tasks: dict[str, ReplicationTask] = {}
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    def replicate_object(self, obj: StorageObject, data: DataSource) -> ReplicationTask:
        """Start replicating obj in the background and return its task."""
        targets = self.cluster_manager.select_nodes_for_replication(self.replication_factor)
        if not targets:
            raise ReplicationError("no healthy nodes available for replication")

        task = ReplicationTask(
            object_id=obj.id,
            object_key=obj.key,
            source_node=self.cluster_manager.current_node.id,
            target_nodes=[node.id for node in targets],
        )
        thread = threading.Thread(
            target=self._execute, args=(task, obj, data), name=f"replicate-{obj.id}", daemon=True
        )
        with self._lock:
            self._tasks[obj.id] = task
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)
        thread.start()
        return task

    def replication_status(self, object_id: str) -> ReplicationTask | None:
        with self._lock:
            return self._tasks.get(object_id)

    def all_tasks(self) -> list[ReplicationTask]:
        with self._lock:
            return list(self._tasks.values())

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for running replications; return True if all have finished."""
        with self._lock:
            threads = list(self._threads)
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(thread.is_alive() for thread in threads)

    def _execute(self, task: ReplicationTask, obj: StorageObject, data: DataSource) -> None:
        with self._lock:
            task.status = TaskStatus.IN_PROGRESS

        try:
            payload = _read_all(data)
        except (OSError, ValueError) as exc:
            self._mark_failed(task, f"Failed to buffer data: {exc}")
            return

        def send(node_id: str) -> bool:
            ok = self._replicate_to_node(node_id, obj, payload)
            if ok:
                log.info("Successfully replicated object %s to node %s", obj.key, node_id)
            else:
                log.info("Failed to replicate object %s to node %s", obj.key, node_id)
            return ok

        with ThreadPoolExecutor(max_workers=len(task.target_nodes)) as pool:
            successes = sum(pool.map(send, task.target_nodes))

        if successes:
            with self._lock:
                task.status = TaskStatus.COMPLETED
                task.completed_at = utcnow()
            log.info(
                "Replication completed for object %s (%d/%d nodes successful)",
                obj.key, successes, len(task.target_nodes),
            )
        else:
            self._mark_failed(task, "Failed to replicate to any target node")

    def _replicate_to_node(self, node_id: str, obj: StorageObject, payload: bytes) -> bool:
        target: Node | None = next(
            (node for node in self.cluster_manager.healthy_nodes() if node.id == node_id), None
        )
        if target is None:
            return False

        url = f"http://{target.address}/internal/replicate/{obj.key}"
        headers = {
            "Content-Type": obj.content_type,
            "X-Object-ID": obj.id,
            "X-Checksum": obj.checksum,
            "X-Replication-Source": self.cluster_manager.current_node.id,
        }
        try:
            status = self._sender(url, payload, headers, self._timeout)
        except (OSError, ValueError):
            return False
        return status == 200

    def _mark_failed(self, task: ReplicationTask, message: str) -> None:
        with self._lock:
            task.status = TaskStatus.FAILED
            task.error = message
            task.completed_at = utcnow()