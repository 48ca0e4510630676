"""HTTP API for series ingestion and queries using FastAPI."""
from html import escape
from pathlib import Path
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles
import json
import logging

from sts.ingest import Accepted, Found, IngestService
from sts.series import SeriesInfo

logger = logging.getLogger(__name__)

GZIP_MINIMUM_SIZE = 500

INDEX_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Available series</title></head>
<body>
<h1>Available series</h1>
<table>
<tr><th>Name</th><th>Observations</th><th>Last modified</th></tr>
{rows}
</table>
</body>
</html>
"""


def render_index(infos: List[SeriesInfo]) -> str:
    """Render the HTML listing of all series."""
    rows = "\n".join(
        f'<tr><td><a href="/images/{escape(info.name)}.svg">{escape(info.name)}</a></td>'
        f"<td>{info.count}</td>"
        f"<td>{escape(info.last_modified.isoformat())}</td></tr>"
        for info in infos
    )
    return INDEX_TEMPLATE.format(rows=rows)


class SeriesAPI:
    """FastAPI application exposing the ingestion service."""

    def __init__(self, service: IngestService, image_dir: Optional[Path] = None, self_metrics=None):
        """
        Initialize the API.

        Args:
            service: Ingestion/query service backing the routes
            image_dir: Directory served under /images, if any
            self_metrics: Metrics fan-out whose Prometheus backend serves /metrics
        """
        self.service = service
        self.self_metrics = self_metrics
        self.app = FastAPI(title="Simple Time Series")
        self.app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

        if image_dir is not None:
            Path(image_dir).mkdir(parents=True, exist_ok=True)
            self.app.mount("/images", StaticFiles(directory=str(image_dir)), name="images")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""
        @self.app.get("/", response_class=HTMLResponse)
        def index():
            """HTML listing of all series."""
            return HTMLResponse(render_index(self.service.list_series()))

        @self.app.get("/healthz")
        def healthz():
            """Health check endpoint."""
            return {
                "status": "healthy",
                "series": len(self.service.store),
                "queue_depth": self.service.worker.depth,
                "worker_running": self.service.worker.running,
            }

        @self.app.get("/metrics")
        def metrics():
            """Prometheus exposition of the self metrics."""
            prometheus = self.self_metrics.prometheus if self.self_metrics else None
            if prometheus is None:
                raise HTTPException(status_code=404, detail="Prometheus metrics disabled")
            return Response(prometheus.exposition(), media_type=self.self_metrics.content_type)

        @self.app.get("/{name}")
        def get_series(name: str):
            """Report how many values a series holds."""
            result = self.service.handle_read(name)
            if isinstance(result, Found):
                return PlainTextResponse(result.message)
            return Response(status_code=404)

        @self.app.post("/{name}")
        async def add_datum(name: str, request: Request):
            """Ingest one point into a series."""
            body = await request.body()
            try:
                payload = json.loads(body)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=f"Malformed JSON body: {e}")

            # Ingestion blocks on the store lock and the queue slot
            result = await run_in_threadpool(self.service.handle_write, name, payload)

            if isinstance(result, Accepted):
                return PlainTextResponse(result.message)
            if result.retryable:
                raise HTTPException(
                    status_code=503,
                    detail=result.reason,
                    headers={"Retry-After": "1"}
                )
            raise HTTPException(status_code=400, detail=result.reason)

    def run(self, host: str = "127.0.0.1", port: int = 8443,
            ssl_keyfile: Optional[str] = None, ssl_certfile: Optional[str] = None):
        """Run the API server."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=host,
            port=port,
            ssl_keyfile=ssl_keyfile,
            ssl_certfile=ssl_certfile,
            log_level="info"
        )
