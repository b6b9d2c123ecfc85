"""HTTP interface to the object store, served as a WSGI application."""

from __future__ import annotations

import io
import json
import re
import threading
from http import HTTPStatus
from typing import Any, Callable, Iterable, Mapping
from wsgiref.util import FileWrapper

from .filestore import FileStore, StorageError
from .models import AccessPattern, StorageObject, utcnow

_OBJECT_ROUTE = re.compile(r"^/objects/(?P<key>[^/]+)$")
_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}

_Response = tuple[int, list[tuple[str, str]], Iterable[bytes]]


def _json_response(payload: Any) -> _Response:
    text = json.dumps(payload, ensure_ascii=False)
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    body = (text + "\n").encode("utf-8")
    return 200, [("Content-Type", "application/json"), ("Content-Length", str(len(body)))], [body]


def _error(message: str, status: int) -> _Response:
    body = (message + "\n").encode("utf-8")
    headers = [
        ("Content-Type", "text/plain; charset=utf-8"),
        ("X-Content-Type-Options", "nosniff"),
        ("Content-Length", str(len(body))),
    ]
    return status, headers, [body]


def _request_body(environ: Mapping[str, Any]) -> io.BytesIO:
    stream = environ["wsgi.input"]
    if environ.get("wsgi.input_terminated"):
        return io.BytesIO(stream.read())
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    return io.BytesIO(stream.read(length) if length > 0 else b"")


def calculate_total_size(objects: Mapping[str, StorageObject]) -> int:
    """Sum the sizes of all objects."""
    return sum(obj.size for obj in objects.values())


def calculate_tier_distribution(objects: Mapping[str, StorageObject]) -> dict[str, int]:
    """Count objects per storage tier."""
    distribution: dict[str, int] = {}
    for obj in objects.values():
        distribution[obj.storage_tier] = distribution.get(obj.storage_tier, 0) + 1
    return distribution


class APIServer:
    """WSGI application exposing object, statistics and health endpoints."""

    def __init__(self, store: FileStore) -> None:
        self.store = store
        self._patterns: list[AccessPattern] = []
        self._lock = threading.Lock()

    @property
    def access_patterns(self) -> list[AccessPattern]:
        with self._lock:
            return list(self._patterns)

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        method = str(environ.get("REQUEST_METHOD", "GET")).upper()
        status, headers, body = self._dispatch(method, environ.get("PATH_INFO") or "/", environ)
        start_response(f"{status} {HTTPStatus(status).phrase}", headers)
        return body

    def _dispatch(self, method: str, path: str, environ: dict[str, Any]) -> _Response:
        fixed = {"/objects": self._list_objects, "/stats": self._stats, "/health": self._health}
        args: tuple[str, ...] = ()
        if path in fixed:
            handlers = {"GET": fixed[path]}
        elif match := _OBJECT_ROUTE.match(path):
            handlers = {"GET": self._get_object, "PUT": self._put_object, "DELETE": self._delete_object}
            args = (match["key"],)
        else:
            return _error("404 page not found", 404)
        handler = handlers.get(method)
        if handler is None:
            return 405, [("Content-Length", "0")], []
        return handler(environ, *args)

    def _put_object(self, environ: dict[str, Any], key: str) -> _Response:
        content_type = environ.get("CONTENT_TYPE") or "application/octet-stream"
        try:
            obj = self.store.put(key, _request_body(environ), content_type)
        except StorageError as exc:
            return _error(str(exc), 500)
        self._track(obj.id, "write", environ.get("HTTP_USER_ID", ""), obj.size)
        return _json_response(obj.to_dict())

    def _get_object(self, environ: dict[str, Any], key: str) -> _Response:
        try:
            stream, obj = self.store.get(key)
        except StorageError as exc:
            return _error(str(exc), 404)
        self._track(obj.id, "read", environ.get("HTTP_USER_ID", ""), obj.size)
        headers = [
            ("Content-Type", obj.content_type),
            ("Content-Length", str(obj.size)),
            ("ETag", obj.checksum),
        ]
        return 200, headers, FileWrapper(stream)

    def _delete_object(self, environ: dict[str, Any], key: str) -> _Response:
        try:
            self.store.delete(key)
        except StorageError as exc:
            return _error(str(exc), 404)
        return 204, [], []

    def _list_objects(self, environ: dict[str, Any]) -> _Response:
        objects = self.store.list()
        return _json_response({key: objects[key].to_dict() for key in sorted(objects)})

    def _stats(self, environ: dict[str, Any]) -> _Response:
        objects = self.store.list()
        patterns = self.access_patterns
        distribution = calculate_tier_distribution(objects)
        return _json_response({
            "access_patterns": [p.to_dict() for p in patterns] if patterns else None,
            "tier_distribution": dict(sorted(distribution.items())),
            "total_objects": len(objects),
            "total_size": calculate_total_size(objects),
        })

    def _health(self, environ: dict[str, Any]) -> _Response:
        return _json_response({"status": "healthy"})

    def _track(self, object_id: str, operation: str, user_id: str, size: int) -> None:
        pattern = AccessPattern(object_id, utcnow(), operation, user_id, size)
        with self._lock:
            self._patterns.append(pattern)