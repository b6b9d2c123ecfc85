"""Command-line entry point that runs the storage HTTP server."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from socketserver import ThreadingMixIn
from typing import Sequence
from wsgiref.simple_server import WSGIServer, make_server

from .api import APIServer
from .filestore import FileStore

log = logging.getLogger(__name__)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tierstore-server", description="Run the object storage server.")
    parser.add_argument("-port", "--port", default="8080", help="Server port")
    parser.add_argument("-storage", "--storage", default="./data", help="Storage directory")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Serve the storage API until SIGINT or SIGTERM; return the exit status."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    app = APIServer(FileStore(args.storage))
    try:
        httpd = make_server("", int(args.port), app, server_class=_ThreadingWSGIServer)
    except (ValueError, OSError, OverflowError) as exc:
        log.critical("Server failed to start: %s", exc)
        return 1

    def shutdown(signum, frame) -> None:
        log.info("Shutting down server...")
        threading.Thread(target=httpd.shutdown, daemon=True).start()

    previous = {}
    if threading.current_thread() is threading.main_thread():
        previous = {sig: signal.signal(sig, shutdown) for sig in (signal.SIGINT, signal.SIGTERM)}
    with httpd:
        try:
            log.info("Starting storage server on port %s", args.port)
            log.info("Storage directory: %s", args.storage)
            httpd.serve_forever()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
    return 0