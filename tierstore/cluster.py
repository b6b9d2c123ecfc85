"""Cluster membership, health checking and node selection."""

from __future__ import annotations

import json
import logging
import threading
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from .models import ZERO_TIME, format_time, parse_time, utcnow

log = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10 * 1024 * 1024 * 1024  # 10 GiB
HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


def _require_mapping(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _field(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"field {key!r} has the wrong type")
    if kind is float and isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} has the wrong type")
    return value


def _time_field(data: dict[str, Any], key: str) -> datetime:
    value = data.get(key)
    if value is None:
        return ZERO_TIME
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} is not a time")
    try:
        return parse_time(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"field {key!r} is not a valid time") from exc


@dataclass
class Node:
    """A storage node taking part in the cluster."""

    id: str = ""
    address: str = ""
    status: str = ""  # healthy, unhealthy, unknown
    last_seen: datetime = ZERO_TIME
    load: float = 0.0
    capacity: int = 0
    used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "status": self.status,
            "last_seen": format_time(self.last_seen),
            "load": self.load,
            "capacity": self.capacity,
            "used": self.used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        data = _require_mapping(data)
        return cls(
            id=_field(data, "id", str, ""),
            address=_field(data, "address", str, ""),
            status=_field(data, "status", str, ""),
            last_seen=_time_field(data, "last_seen"),
            load=_field(data, "load", float, 0.0),
            capacity=_field(data, "capacity", int, 0),
            used=_field(data, "used", int, 0),
        )


def _http_ping(node: Node) -> bool:
    try:
        with urllib.request.urlopen(f"http://{node.address}/health", timeout=5) as resp:
            return resp.status == 200
    except (OSError, ValueError):
        return False


class ClusterManager:
    """Tracks cluster nodes and periodically checks their health."""

    def __init__(
        self,
        node_id: str,
        node_address: str,
        *,
        pinger: Callable[[Node], bool] | None = None,
        health_interval: float = 30.0,
        stale_after: float = 60.0,
        start_health_check: bool = True,
    ) -> None:
        self._lock = threading.RLock()
        self._pinger = pinger or _http_ping
        self._health_interval = health_interval
        self._stale_after = timedelta(seconds=stale_after)
        self._current = Node(
            id=node_id,
            address=node_address,
            status=HEALTHY,
            last_seen=utcnow(),
            load=0.0,
            capacity=DEFAULT_CAPACITY,
            used=0,
        )
        self._nodes: dict[str, Node] = {node_id: self._current}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        if start_health_check:
            self._thread = threading.Thread(
                target=self._health_loop, name="cluster-health", daemon=True
            )
            self._thread.start()

    @property
    def current_node(self) -> Node:
        with self._lock:
            return self._current

    def __enter__(self) -> ClusterManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop the background health check."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _health_loop(self) -> None:
        while not self._stop.wait(self._health_interval):
            self.perform_health_check()

    def register_node(self, node: Node) -> None:
        """Add or replace a node, marking it as just seen."""
        with self._lock:
            node.last_seen = utcnow()
            self._nodes[node.id] = node
        log.info("Node registered: %s (%s)", node.id, node.address)

    def healthy_nodes(self) -> list[Node]:
        with self._lock:
            return [node for node in self._nodes.values() if node.status == HEALTHY]

    def select_node_for_write(self) -> Node | None:
        """Return the healthy node with the lowest storage utilisation below 1.0."""
        best: Node | None = None
        lowest = 1.0
        for node in self.healthy_nodes():
            if node.capacity == 0:
                continue
            utilization = node.used / node.capacity
            if utilization < lowest:
                lowest = utilization
                best = node
        return best

    def select_nodes_for_replication(self, count: int) -> list[Node]:
        if count < 0:
            raise ValueError("replica count must not be negative")
        return self.healthy_nodes()[:count]

    def perform_health_check(self) -> None:
        """Mark stale nodes unhealthy and ping the rest."""
        with self._lock:
            now = utcnow()
            for node_id, node in self._nodes.items():
                if node_id == self._current.id:
                    continue
                if now - node.last_seen > self._stale_after:
                    node.status = UNHEALTHY
                    log.info("Node marked unhealthy: %s", node_id)
                    continue
                if self._pinger(node):
                    node.status = HEALTHY
                    node.last_seen = now
                else:
                    node.status = UNHEALTHY

    def cluster_stats(self) -> dict[str, Any]:
        with self._lock:
            nodes = dict(self._nodes)
        total_capacity = sum(node.capacity for node in nodes.values())
        total_used = sum(node.used for node in nodes.values())
        return {
            "total_nodes": len(nodes),
            "healthy_nodes": sum(1 for node in nodes.values() if node.status == HEALTHY),
            "total_capacity": total_capacity,
            "total_used": total_used,
            "utilization": total_used / total_capacity if total_capacity else float("nan"),
            "nodes": nodes,
        }

    def handle_node_registration(self, body: bytes | str) -> tuple[int, str, bytes]:
        """Register a node from a JSON request body.

        Returns the HTTP status code, content type and response body.
        """
        try:
            node = Node.from_dict(json.loads(body))
        except ValueError:
            return 400, "text/plain; charset=utf-8", b"Invalid node data\n"
        self.register_node(node)
        return 200, "application/json", _encode({"status": "registered"})

    def handle_cluster_status(self) -> tuple[int, str, bytes]:
        """Return the cluster statistics as a JSON response."""
        stats = self.cluster_stats()
        stats["nodes"] = {key: node.to_dict() for key, node in stats["nodes"].items()}
        return 200, "application/json", _encode(stats)


def _encode(payload: Any) -> bytes:
    return (json.dumps(payload) + "\n").encode()