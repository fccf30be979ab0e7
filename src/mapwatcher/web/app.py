"""Flask application factory for the mapwatcher status API.

The ``create_app`` function wraps a watcher and returns a Flask app with
three endpoints:

- ``GET /`` — render the latest report as an HTML page.
- ``POST /api/sample`` — take one sample and return the report as JSON.
- ``GET /api/status`` — return pid, sample count, and recent log lines.

Sampling happens on request rather than on a background timer, so the
client's polling rate is the sampling rate.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from flask import Flask, Response, jsonify, render_template

from mapwatcher.config import DEFAULT_PROC_ROOT, ConfigError, WatchConfig
from mapwatcher.logging import LogLevel
from mapwatcher.render import format_report
from mapwatcher.smaps.parser import SmapsParseError
from mapwatcher.source import SourceError
from mapwatcher.watcher import MapWatcher

if TYPE_CHECKING:
    from collections.abc import Sequence

_HTTP_SERVICE_UNAVAILABLE = 503
_STATUS_LOG_LINES = 20


def create_app(watcher: MapWatcher) -> Flask:
    """Create and configure the Flask application.

    Args:
        watcher: The watcher to expose.  It is started here if it has
            no snapshot yet.

    Returns:
        A configured Flask application ready to serve.

    """
    if watcher.window.current is None:
        watcher.start()

    app = Flask(__name__)

    @app.route("/")
    def index() -> str:  # pyright: ignore[reportUnusedFunction]
        """Render the latest report."""
        report = watcher.last_report
        text = format_report(report) if report is not None else "No samples yet."
        return render_template(
            "index.html",
            pid=watcher.config.pid,
            samples=watcher.samples,
            report=text,
            log=watcher.logger.tail(_STATUS_LOG_LINES),
        )

    @app.route("/api/sample", methods=["POST"])
    def sample() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Take one sample and return the report.

        Returns:
            The report as JSON, or an ``error`` field with status 503
            if the process can no longer be read.

        """
        try:
            report = watcher.sample()
        except (SourceError, SmapsParseError) as e:
            watcher.logger.log(
                LogLevel.ERROR,
                f"Could not get maps: {e}",
                source="web",
                sample=watcher.samples + 1,
            )
            return jsonify({"error": str(e)}), _HTTP_SERVICE_UNAVAILABLE
        return jsonify(report.to_dict())

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return watcher status for polling.

        Returns:
            JSON with ``pid``, ``samples``, ``mappings``, and ``log`` fields.

        """
        current = watcher.window.current
        return jsonify(
            {
                "pid": watcher.config.pid,
                "samples": watcher.samples,
                "mappings": len(current) if current is not None else 0,
                "log": [e.to_dict() for e in watcher.logger.tail(_STATUS_LOG_LINES)],
            }
        )

    return app


def main(argv: Sequence[str] | None = None) -> int:
    """Run the status API development server.

    This is the ``mapwatcher-web`` console entry point.

    Returns:
        The process exit status: 1 if the process cannot be watched.

    """
    parser = argparse.ArgumentParser(prog="mapwatcher-web")
    parser.add_argument("pid", type=int, help="pid of the target process")
    parser.add_argument("--port", type=int, default=8080, help="port to listen on")
    parser.add_argument(
        "--proc-root", type=Path, default=DEFAULT_PROC_ROOT, help="procfs mount point"
    )
    args = parser.parse_args(argv)
    try:
        watcher = MapWatcher(WatchConfig(pid=args.pid, proc_root=args.proc_root))
        app = create_app(watcher)
    except (ConfigError, SourceError, SmapsParseError) as e:
        print(f"mapwatcher-web: {e}", file=sys.stderr)
        return 1
    app.run(debug=True, port=args.port)
    return 0
