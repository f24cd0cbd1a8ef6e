"""Worker entrypoint for container deployments.

Runs a small health endpoint next to the Celery worker so that platforms
which require an HTTP port can supervise the worker process.
"""

import json
import logging
import os
import subprocess
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from videoframer.config import get_settings

logger = logging.getLogger(__name__)


class HealthHandler(BaseHTTPRequestHandler):
    """Answers GET /health with the queue this worker consumes."""

    def do_GET(self):
        if self.path not in ("/health", "/"):
            self.send_response(404)
            self.end_headers()
            return
        body = json.dumps(
            {"status": "ok", "role": "worker", "queue": get_settings().queue_name}
        ).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        # Probes hit this every few seconds
        pass


def run_health_server(port: int | None = None) -> None:
    port = port or int(os.environ.get("PORT", 8080))
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    logger.info(f"Worker health endpoint on port {port}")
    server.serve_forever()


def build_worker_command() -> list[str]:
    """Celery CLI invocation consuming the configured job queue."""
    settings = get_settings()
    return [
        "celery",
        "-A", "videoframer.celery_app",
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        "-Q", settings.queue_name,
        f"--concurrency={os.environ.get('WORKER_CONCURRENCY', '2')}",
    ]


def run_celery_worker() -> int:
    return subprocess.run(build_worker_command()).returncode


def main() -> None:
    logging.basicConfig(level=get_settings().log_level.upper())
    threading.Thread(target=run_health_server, daemon=True).start()
    raise SystemExit(run_celery_worker())


if __name__ == "__main__":
    main()
