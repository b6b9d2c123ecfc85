"""Data records shared by the storage, cluster and API layers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"^(?P<main>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$"
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_time(value: datetime) -> str:
    """Format a datetime as RFC 3339 with trailing fractional zeros trimmed.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = f"{value.year:04d}-{value:%m-%dT%H:%M:%S}"
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    hours, minutes = divmod(abs(int(offset.total_seconds())) // 60, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def parse_time(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; sub-microsecond digits are dropped."""
    match = _TIME_RE.match(text) if isinstance(text, str) else None
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    frac = match["frac"]
    frac_part = "." + frac[:6].ljust(6, "0") if frac else ""
    tz = "+00:00" if match["tz"] in ("Z", "z") else match["tz"]
    return datetime.fromisoformat(match["main"] + frac_part + tz)


def _mapping(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def _get(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) and kind is not bool:
        raise ValueError(f"field {key!r} must be of type {kind.__name__}")
    if kind is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} must be of type {kind.__name__}")
    return value


def _get_time(data: dict[str, Any], key: str) -> datetime:
    value = data.get(key)
    return ZERO_TIME if value is None else parse_time(value)


@dataclass
class ReplicaInfo:
    """Location and state of one copy of an object."""

    node_id: str = ""
    file_path: str = ""
    status: str = ""  # active, syncing, failed

    def to_dict(self) -> dict[str, Any]:
        return {"node_id": self.node_id, "file_path": self.file_path, "status": self.status}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplicaInfo:
        data = _mapping(data)
        return cls(*(_get(data, name, str, "") for name in ("node_id", "file_path", "status")))


@dataclass
class StorageObject:
    """Metadata for a stored object."""

    id: str = ""
    key: str = ""
    size: int = 0
    content_type: str = ""
    checksum: str = ""
    created_at: datetime = ZERO_TIME
    updated_at: datetime = ZERO_TIME
    access_count: int = 0
    last_access: datetime = ZERO_TIME
    metadata: dict[str, str] | None = None
    storage_tier: str = ""  # hot, warm, cold
    replicas: list[ReplicaInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "size": self.size,
            "content_type": self.content_type,
            "checksum": self.checksum,
            "created_at": format_time(self.created_at),
            "updated_at": format_time(self.updated_at),
            "access_count": self.access_count,
            "last_access": format_time(self.last_access),
            "metadata": None if self.metadata is None else dict(self.metadata),
            "storage_tier": self.storage_tier,
            "replicas": [replica.to_dict() for replica in self.replicas],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageObject:
        data = _mapping(data)
        metadata = data.get("metadata")
        if metadata is not None:
            metadata = dict(_mapping(metadata))
            if not all(isinstance(v, str) for v in metadata.values()):
                raise ValueError("metadata values must be strings")
        return cls(
            id=_get(data, "id", str, ""),
            key=_get(data, "key", str, ""),
            size=_get(data, "size", int, 0),
            content_type=_get(data, "content_type", str, ""),
            checksum=_get(data, "checksum", str, ""),
            created_at=_get_time(data, "created_at"),
            updated_at=_get_time(data, "updated_at"),
            access_count=_get(data, "access_count", int, 0),
            last_access=_get_time(data, "last_access"),
            metadata=metadata,
            storage_tier=_get(data, "storage_tier", str, ""),
            replicas=[ReplicaInfo.from_dict(item) for item in _get(data, "replicas", list, [])],
        )


@dataclass
class AccessPattern:
    """A single recorded read, write or delete of an object."""

    object_id: str = ""
    access_time: datetime = ZERO_TIME
    operation: str = ""  # read, write, delete
    user_id: str = ""
    size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.object_id,
            "access_time": format_time(self.access_time),
            "operation": self.operation,
            "user_id": self.user_id,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessPattern:
        data = _mapping(data)
        return cls(
            object_id=_get(data, "object_id", str, ""),
            access_time=_get_time(data, "access_time"),
            operation=_get(data, "operation", str, ""),
            user_id=_get(data, "user_id", str, ""),
            size=_get(data, "size", int, 0),
        )