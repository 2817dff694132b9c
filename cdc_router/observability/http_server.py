"""Operational HTTP endpoints: version, Prometheus metrics and health."""

from datetime import datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
import json
from threading import Thread
from typing import Callable, Optional

from prometheus_client import CONTENT_TYPE_LATEST

from cdc_router import __version__
from cdc_router.common.config import get_settings
from cdc_router.observability.metrics import MetricsSink


class OperationsHandler(BaseHTTPRequestHandler):
    """HTTP handler for the operational endpoints."""

    metrics: MetricsSink
    is_running: Callable[[], bool]

    def do_GET(self) -> None:
        """Handle GET requests."""
        if self.path == "/version":
            self._respond(200, "text/plain; charset=utf-8", __version__.encode())

        elif self.path == "/metrics":
            self._respond(200, CONTENT_TYPE_LATEST, self.metrics.exposition())

        elif self.path == "/health":
            running = self.is_running()
            body = {
                "status": "healthy" if running else "unhealthy",
                "timestamp": datetime.now().isoformat(),
            }
            self._respond(
                200 if running else 503, "application/json", json.dumps(body).encode()
            )

        else:
            self.send_response(404)
            self.end_headers()

    def _respond(self, status_code: int, content_type: str, body: bytes) -> None:
        self.send_response(status_code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:  # type: ignore
        """Suppress default logging."""
        pass


class OperationsServer:
    """HTTP server for the operational endpoints."""

    def __init__(
        self,
        metrics: MetricsSink,
        is_running: Callable[[], bool] = lambda: True,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        """
        Initialize operations server.

        Args:
            metrics: Metrics sink exposed on /metrics
            is_running: Reports whether the routing loop is alive, for /health
            host: Interface to bind (default from config)
            port: Port to listen on (default from config, 0 picks a free port)
        """
        settings = get_settings()
        host = host if host is not None else settings.http.host
        port = port if port is not None else settings.http.port

        handler = type(
            "BoundOperationsHandler",
            (OperationsHandler,),
            {"metrics": metrics, "is_running": staticmethod(is_running)},
        )

        self.server = HTTPServer((host, port), handler)
        self.port = self.server.server_address[1]
        self._thread: Optional[Thread] = None

    def start(self) -> None:
        """Start the server in a background thread."""

        def run_server() -> None:
            self.server.serve_forever()

        self._thread = Thread(target=run_server, name="cdc-router-http", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the server."""
        self.server.shutdown()
        self.server.server_close()
        if self._thread:
            self._thread.join()
