"""Application assembly and the command that serves the HTTP API."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any

from flask import Flask, g, request

from bookshelf.book_repository import BookRepository
from bookshelf.book_service import BookService
from bookshelf.broker import get_consumer, get_producer
from bookshelf.database import init_db
from bookshelf.errors import BookshelfError
from bookshelf.handlers import BookHandler, register_routes
from bookshelf.logformat import format_access_log

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("bookshelf.access")

DEFAULT_PORT = 8080


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _configure_logging(debug: bool) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def create_app(service: Any) -> Flask:
    """Build the Flask application serving ``service``."""
    app = Flask("bookshelf")
    app.json.ensure_ascii = False
    app.json.sort_keys = False

    @app.before_request
    def _mark_start() -> None:
        g.request_started = time.perf_counter()
        g.request_time = datetime.now().astimezone()

    @app.after_request
    def _log_access(response):
        started = g.get("request_started", time.perf_counter())
        line = format_access_log(
            request.remote_addr or "",
            g.get("request_time") or datetime.now().astimezone(),
            request.path,
            request.method,
            response.status_code,
            time.perf_counter() - started,
            request.user_agent.string,
            "",
        )
        access_logger.info(line)
        return response

    register_routes(app, BookHandler(service))
    return app


def main(argv: list[str] | None = None) -> int:
    """Start the book service and serve the HTTP API until interrupted."""
    parser = argparse.ArgumentParser(prog="bookshelf", description="Serve the book store API.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    _configure_logging(os.environ.get("DEBUG_MODE") == "true")

    bootstrap = os.environ.get("BOOTTRAP", "")
    try:
        engine = init_db()
        producer = get_producer(bootstrap)
        consumer = get_consumer(bootstrap, os.environ.get("GROUP_ID", ""))
    except BookshelfError as exc:
        logger.critical("startup failed: %s", exc)
        return 1

    service = BookService(
        BookRepository(engine), producer, consumer, os.environ.get("TOPIC", "")
    )
    service.start()
    try:
        create_app(service).run(host=args.host, port=args.port)
    finally:
        service.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())