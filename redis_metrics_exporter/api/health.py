"""Index page and health check."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from redis_metrics_exporter import __version__

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Landing page linking to the metrics endpoint."""
    metric_path = request.app.state.settings.metric_path
    return f"""<html>
<head><title>Redis Exporter {__version__}</title></head>
<body>
<h1>Redis Exporter {__version__}</h1>
<p><a href='{metric_path}'>Metrics</a></p>
</body>
</html>
"""


@router.get("/health", response_class=PlainTextResponse)
@router.head("/health")
async def health():
    """Liveness only; the target's health is reported by ``up``."""
    return "ok"
