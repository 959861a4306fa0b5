from __future__ import annotations

from fastapi import APIRouter, Request, Response

from prcli.services.executor.metrics import PrometheusMetrics

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def get_metrics(request: Request) -> Response:
    metrics: PrometheusMetrics = request.app.state.metrics
    return Response(content=metrics.render(), media_type=metrics.content_type)
