"""
Request timing middleware.

Tags each request with an id (X-Request-ID, taken from the caller when
present) and reports its duration in X-Request-Duration-Ms.

Log levels:
    slow (> SLOW_REQUEST_MS)      WARNING
    5xx                           ERROR
    rejected write (4xx on POST/PUT/DELETE)  INFO
    anything else                 DEBUG
Health probes are never logged.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_WRITE_METHODS = frozenset({"POST", "PUT", "DELETE"})

# Workbook writes rewrite the whole file, so the default is generous
DEFAULT_SLOW_REQUEST_MS = 1500


def _log_level(method, status, duration_ms):
    if duration_ms > current_app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS):
        return logging.WARNING, "Slow request"
    if status >= 500:
        return logging.ERROR, "Server error"
    if status >= 400 and method in _WRITE_METHODS:
        return logging.INFO, "Rejected"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    """Register the before/after hooks on *app*."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.blueprint == "health_bp":
            return response

        level, label = _log_level(request.method, response.status_code, duration_ms)
        logger.log(
            level, "%s: %s %s -> %d", label, request.method, request.full_path.rstrip("?"),
            response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
            },
        )
        return response
