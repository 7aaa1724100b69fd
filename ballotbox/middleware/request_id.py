import time
import uuid
from flask import g, request


def init_request_id(app):
    @app.before_request
    def _assign_request_id():
        rid = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        g.request_id = rid
        g.request_started = time.monotonic()

    @app.after_request
    def _add_request_id_header(response):
        if hasattr(g, "request_id"):
            response.headers["X-Request-Id"] = g.request_id
            elapsed_ms = (time.monotonic() - g.get("request_started", time.monotonic())) * 1000
            app.logger.info(
                "request_id=%s %s %s -> %s (%.1fms)",
                g.request_id, request.method, request.path, response.status_code, elapsed_ms,
            )
        return response
