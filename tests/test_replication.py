import io
import threading

import pytest

from tierstore.cluster import ClusterManager, Node
from tierstore.models import StorageObject
from tierstore.replication import (
    ReplicationError,
    ReplicationManager,
    ReplicationTask,
    TaskStatus,
)


class RecordingSender:
    def __init__(self, status=200, by_address=None):
        self.status = status
        self.by_address = by_address or {}
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, url, body, headers, timeout):
        with self.lock:
            self.calls.append((url, body, dict(headers)))
        for address, status in self.by_address.items():
            if address in url:
                if isinstance(status, Exception):
                    raise status
                return status
        return self.status


@pytest.fixture
def cluster():
    manager = ClusterManager("node-a", "127.0.0.1:8080", start_health_check=False)
    manager.register_node(Node(id="node-b", address="127.0.0.1:9000", status="healthy"))
    yield manager
    manager.close()


def make_obj():
    return StorageObject(
        id="obj-1", key="docs/readme.txt", content_type="text/plain", checksum="abc123"
    )


def test_successful_replication(cluster):
    sender = RecordingSender()
    manager = ReplicationManager(cluster, 2, sender=sender)
    task = manager.replicate_object(make_obj(), b"hello")
    assert task.target_nodes == ["node-a", "node-b"]
    assert task.source_node == "node-a"
    assert manager.wait(5)

    status = manager.replication_status("obj-1")
    assert status is task
    assert status.status is TaskStatus.COMPLETED
    assert status.completed_at is not None
    assert status.error == ""

    urls = sorted(url for url, _, _ in sender.calls)
    assert urls == [
        "http://127.0.0.1:8080/internal/replicate/docs/readme.txt",
        "http://127.0.0.1:9000/internal/replicate/docs/readme.txt",
    ]
    for _, body, headers in sender.calls:
        assert body == b"hello"
        assert headers["Content-Type"] == "text/plain"
        assert headers["X-Object-ID"] == "obj-1"
        assert headers["X-Checksum"] == "abc123"
        assert headers["X-Replication-Source"] == "node-a"


def test_stream_data_is_buffered_once(cluster):
    sender = RecordingSender()
    manager = ReplicationManager(cluster, 2, sender=sender)
    manager.replicate_object(make_obj(), io.BytesIO(b"stream body"))
    assert manager.wait(5)
    assert [body for _, body, _ in sender.calls] == [b"stream body", b"stream body"]


def test_partial_success_completes(cluster):
    sender = RecordingSender(by_address={"127.0.0.1:9000": 500})
    manager = ReplicationManager(cluster, 2, sender=sender)
    manager.replicate_object(make_obj(), b"x")
    assert manager.wait(5)
    assert manager.replication_status("obj-1").status is TaskStatus.COMPLETED


def test_all_failures_mark_task_failed(cluster):
    sender = RecordingSender(by_address={"127.0.0.1:9000": OSError("refused")}, status=500)
    manager = ReplicationManager(cluster, 2, sender=sender)
    manager.replicate_object(make_obj(), b"x")
    assert manager.wait(5)
    task = manager.replication_status("obj-1")
    assert task.status is TaskStatus.FAILED
    assert task.error == "Failed to replicate to any target node"
    assert task.completed_at is not None
    assert task.to_dict()["error"] == "Failed to replicate to any target node"


def test_unreadable_data_fails(cluster):
    class Broken:
        def read(self, *args):
            raise OSError("disk gone")

    sender = RecordingSender()
    manager = ReplicationManager(cluster, 1, sender=sender)
    manager.replicate_object(make_obj(), Broken())
    assert manager.wait(5)
    task = manager.replication_status("obj-1")
    assert task.status is TaskStatus.FAILED
    assert task.error.startswith("Failed to buffer data:")
    assert sender.calls == []


def test_no_healthy_nodes_raises(cluster):
    cluster.current_node.status = "unhealthy"
    with cluster._lock:
        pass
    for node in cluster.healthy_nodes():
        node.status = "unhealthy"
    manager = ReplicationManager(cluster, 2, sender=RecordingSender())
    with pytest.raises(ReplicationError, match="no healthy nodes available for replication"):
        manager.replicate_object(make_obj(), b"x")
    assert manager.all_tasks() == []


def test_zero_factor_raises(cluster):
    manager = ReplicationManager(cluster, 0, sender=RecordingSender())
    with pytest.raises(ReplicationError):
        manager.replicate_object(make_obj(), b"x")


def test_unknown_status_is_none(cluster):
    manager = ReplicationManager(cluster, 1, sender=RecordingSender())
    assert manager.replication_status("missing") is None


def test_all_tasks_lists_each_object(cluster):
    manager = ReplicationManager(cluster, 1, sender=RecordingSender())
    for obj_id in ("a", "b", "c"):
        manager.replicate_object(StorageObject(id=obj_id, key=obj_id), b"x")
    assert manager.wait(5)
    assert sorted(task.object_id for task in manager.all_tasks()) == ["a", "b", "c"]


def test_running_task_dict_omits_optional_fields(cluster):
    release = threading.Event()

    def blocking_sender(url, body, headers, timeout):
        release.wait(5)
        return 200

    manager = ReplicationManager(cluster, 1, sender=blocking_sender)
    task = manager.replicate_object(make_obj(), b"x")
    data = task.to_dict()
    assert data["status"] in ("pending", "in_progress")
    assert "completed_at" not in data
    assert "error" not in data
    assert not manager.wait(0.05)
    release.set()
    assert manager.wait(5)
    assert task.to_dict()["status"] == "completed"
    assert "completed_at" in task.to_dict()


def test_task_to_dict_fields():
    task = ReplicationTask(
        object_id="o", object_key="k", source_node="n1", target_nodes=["n2"]
    )
    data = task.to_dict()
    assert data["object_id"] == "o"
    assert data["object_key"] == "k"
    assert data["source_node"] == "n1"
    assert data["target_nodes"] == ["n2"]
    assert data["status"] == "pending"
    assert data["created_at"].endswith("Z")