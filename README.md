# tierstore

A small object storage server. Object contents are stored as files in a
local directory and their metadata is kept in `metadata/objects.json` beside
them. Every read and write made through the HTTP interface is recorded as an
access pattern, and a classifier can suggest moving objects between the
`hot`, `warm` and `cold` storage tiers based on how recently and how often
they are used. There are also helpers for tracking cluster nodes and for
copying objects to other nodes in the background.

The package uses only the standard library.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running the server

```
tierstore --port 8080 --storage ./data
```

`--port` defaults to `8080` and `--storage` to `./data` (the single-dash
forms `-port` and `-storage` are accepted too). The storage directory and its
`metadata` subdirectory are created if missing, and existing metadata is
loaded at start-up. The server handles requests in threads and stops on
Ctrl-C or SIGTERM. If it cannot bind the port it logs the error and exits
with status 1.

## HTTP interface

| Method   | Path              | Effect                                                   |
|----------|-------------------|----------------------------------------------------------|
| `GET`    | `/objects`        | JSON map of every stored object's metadata, by key       |
| `GET`    | `/objects/{key}`  | The object's bytes, with `Content-Type`, `Content-Length` and `ETag` (the MD5 checksum); `404` if absent |
| `PUT`    | `/objects/{key}`  | Store the request body under the key, replacing any earlier object; returns the metadata as JSON |
| `DELETE` | `/objects/{key}`  | Remove the object; `204` on success, `404` if absent      |
| `GET`    | `/stats`          | `total_objects`, `total_size`, `tier_distribution` and `access_patterns` |
| `GET`    | `/health`         | `{"status": "healthy"}`                                  |

Keys are a single path segment (no `/`). Unknown paths answer `404`, and
other methods on a known path answer `405`. A `User-ID` request header is
recorded with each read and write. Uploads without a `Content-Type` are
stored as `application/octet-stream`. New objects start in the `hot` tier.

```
curl -X PUT --data-binary @report.pdf -H "Content-Type: application/pdf" \
     http://localhost:8080/objects/report.pdf
curl http://localhost:8080/objects/report.pdf -o report.pdf
curl http://localhost:8080/stats
```

## Using it as a library

```python
import io
from tierstore.filestore import FileStore
from tierstore.classifier import DataClassifier

store = FileStore("./data")
obj = store.put("notes.txt", io.BytesIO(b"hello"), "text/plain")

stream, obj = store.get("notes.txt")
with stream:
    print(stream.read(), obj.checksum, obj.access_count)

for rec in DataClassifier().get_recommendations(store.list()):
    print(rec.object_key, rec.current_tier, "->", rec.recommended_tier, rec.reason)
```

- `tierstore.filestore.FileStore` — `put` (bytes or a binary stream),
  `get` (returns an open stream the caller must close, and counts the
  access), `delete` and `list`. Missing keys raise `ObjectNotFoundError`,
  other failures `StorageError`.
- `tierstore.models` — the `StorageObject`, `ReplicaInfo` and
  `AccessPattern` records, each with `to_dict` and `from_dict`, and
  `format_time` / `parse_time` for RFC 3339 timestamps.
- `tierstore.classifier.DataClassifier` — `classify_objects` returns an
  `ObjectScore` per object, highest score first; `get_recommendations`
  returns a `TieringRecommendation` for each object whose predicted tier
  differs from its current one, with a reason and an estimated monthly
  saving. Thresholds come from `TieringRules`.
- `tierstore.api.APIServer` — the WSGI application behind the server; it
  wraps a `FileStore` and can be served by any WSGI server.
- `tierstore.cluster.ClusterManager` — keeps the nodes of a cluster
  (`Node`), registers new ones, pings them at `/health` in a background
  thread (every 30 seconds by default; a node unseen for 60 seconds is
  marked unhealthy), selects nodes for writes and replication, and reports
  `cluster_stats`. Call `close()` or use it as a context manager to stop the
  health thread. `handle_node_registration` and `handle_cluster_status`
  return a `(status, content type, body)` tuple.
- `tierstore.replication.ReplicationManager` — `replicate_object` picks up
  to the replication factor of healthy nodes, starts copying in the
  background with an HTTP `PUT` to `/internal/replicate/{key}` on each, and
  returns a `ReplicationTask`; it raises `ReplicationError` when no healthy
  node is available. Progress can be read with `replication_status` and
  `all_tasks`, and `wait` blocks until the copies finish.

## What it does not do

The `tierstore` server serves only the endpoints listed above. It does not
use `ClusterManager` or `ReplicationManager`, has no endpoint for node
registration or cluster status, and does not accept the
`/internal/replicate/{key}` requests that `ReplicationManager` sends, so
replication needs a receiving service of your own. The classifier's
recommendations are not exposed over HTTP and objects are never moved
between tiers automatically. The cluster manager counts its own node as
healthy, so it can be among the nodes chosen for replication.