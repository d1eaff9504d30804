#!/usr/bin/env python3
"""
Proposal Desk: Application Entry Point
Creates the Flask app and registers the proposal API Blueprint.
"""

import os
import time
import logging

from flask import Flask, request

from logging_config import setup_logging

log = logging.getLogger("proposaldesk.app")


def _register_request_logging(app):
    """Log every request with its duration."""

    @app.before_request
    def _log_request_start():
        request._start_time = time.time()

    @app.after_request
    def _log_request_end(response):
        if hasattr(request, "_start_time"):
            duration_ms = round((time.time() - request._start_time) * 1000, 1)
            # Skip health-check spam
            if request.path != "/api/health":
                log.info("%s %s → %d (%.0fms)",
                         request.method, request.path, response.status_code, duration_ms,
                         extra={"route": request.path, "method": request.method,
                                "status": response.status_code, "duration_ms": duration_ms})
        return response


def create_app(testing: bool = False):
    """Application factory."""
    if not testing:
        setup_logging()

    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "proposaldesk-dev")
    app.config["TESTING"] = testing

    from proposaldesk.core import paths, db
    from proposaldesk.catalog.store import init_catalog

    paths.ensure_dirs(paths.DATA_DIR, paths.OUTPUT_DIR)
    checks = paths.validate_paths()
    for err in checks["errors"]:
        log.error("Path check: %s", err)
    for warn in checks["warnings"]:
        log.warning("Path check: %s", warn)
    if checks["ok"]:
        log.info("All paths valid (DATA_DIR=%s)", paths.DATA_DIR)
    app.config["PATH_CHECKS"] = checks

    # ── Persistent database init ──────────────────────────────────────────────
    result = db.startup()
    init_catalog()
    log.info("DB: %s | proposals=%d products=%d", result["db_path"],
             result["stats"].get("proposals", 0), result["stats"].get("products", 0))

    from proposaldesk.api.routes import bp
    app.register_blueprint(bp)
    _register_request_logging(app)
    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
