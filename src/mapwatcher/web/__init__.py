"""Browser-facing status API for mapwatcher.

This package provides a Flask application that exposes a running
watcher over HTTP.  It is an **optional** extra — install with::

    pip install mapwatcher[web]

The ``create_app`` factory in ``app.py`` wraps a started ``MapWatcher``
and serves three endpoints:

- ``GET /`` — HTML page showing the latest report.
- ``POST /api/sample`` — take one sample and return the report as JSON.
- ``GET /api/status`` — watched pid, sample count, and recent log lines.
"""
