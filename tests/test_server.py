import json
import os
import signal
import socket
import threading
import time
import urllib.request

from tierstore.filestore import FileStore
from tierstore.server import build_parser, main


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.port == "8080"
    assert args.storage == "./data"


def test_parser_accepts_single_dash_flags():
    args = build_parser().parse_args(["-port", "9000", "-storage", "/srv/store"])
    assert args.port == "9000"
    assert args.storage == "/srv/store"


def test_invalid_port_fails(tmp_path):
    assert main(["--port", "abc", "--storage", str(tmp_path)]) == 1


def test_port_in_use_fails(tmp_path):
    with socket.socket() as sock:
        sock.bind(("", 0))
        sock.listen(1)
        port = sock.getsockname()[1]
        assert main(["--port", str(port), "--storage", str(tmp_path)]) == 1


def _drive(port, results):
    base = f"http://127.0.0.1:{port}"
    try:
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            try:
                with urllib.request.urlopen(base + "/health", timeout=1) as resp:
                    results["health"] = json.loads(resp.read())
                break
            except OSError:
                time.sleep(0.05)
        request = urllib.request.Request(
            base + "/objects/report.txt",
            data=b"hello",
            method="PUT",
            headers={"Content-Type": "text/plain"},
        )
        with urllib.request.urlopen(request, timeout=5) as resp:
            results["put"] = json.loads(resp.read())
    except Exception as exc:  # recorded for the assertion in the test
        results["error"] = exc
    finally:
        os.kill(os.getpid(), signal.SIGTERM)


def test_serves_until_terminated(tmp_path):
    port = _free_port()
    storage = tmp_path / "store"
    results = {}
    driver = threading.Thread(target=_drive, args=(port, results))
    driver.start()
    status = main(["--port", str(port), "--storage", str(storage)])
    driver.join()

    assert status == 0
    assert "error" not in results
    assert results["health"] == {"status": "healthy"}
    assert results["put"]["key"] == "report.txt"
    reopened = FileStore(storage).list()
    assert reopened["report.txt"].size == 5
    assert reopened["report.txt"].content_type == "text/plain"