"""GET /metrics: Prometheus text exposition, served only when metrics are enabled."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from brokerdesk.config import settings

router = APIRouter(tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics():
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics are disabled")
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
