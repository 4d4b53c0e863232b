"""
Request timing middleware.

Every response gets ``X-Request-ID`` (echoed from the caller or generated)
and ``X-Request-Duration-Ms``. Requests are logged with method, path,
status, duration, actor and any questionnaire/sprint/board/task id found
in the URL: DEBUG normally, WARNING when slow, ERROR on 5xx.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probe traffic is not worth a log line
_QUIET_PREFIXES = ("/api/v1/health", "/static")

SLOW_THRESHOLD_MS = 1000

_SCOPE_ARGS = ("questionnaire_id", "sprint_id", "board_id", "task_id")


def _log_level(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_THRESHOLD_MS:
        return logging.WARNING
    return logging.DEBUG


def _request_extra(response, duration_ms: float) -> dict:
    extra = {
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
    }
    view_args = request.view_args or {}
    extra.update({key: view_args[key] for key in _SCOPE_ARGS if key in view_args})
    return extra


def init_request_timing(app: Flask):
    @app.before_request
    def _stamp_request():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path.startswith(_QUIET_PREFIXES):
            return response

        level = _log_level(response.status_code, duration_ms)
        logger.log(level, "%s %s -> %d (%.0fms)",
                   request.method, request.path, response.status_code, duration_ms,
                   extra=_request_extra(response, duration_ms))
        return response
