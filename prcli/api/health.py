from fastapi import APIRouter, HTTPException, Request, status

from prcli import __version__

router = APIRouter(tags=["health"])

# Readiness fails once the job queue is this full.
READY_QUEUE_USAGE = 0.95


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


@router.get("/ready")
async def ready(request: Request) -> dict:
    pool = request.app.state.webhook_pool
    if pool is None:
        return {"status": "ready", "mode": "sync"}
    if not pool.running:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"code": "WORKERS_NOT_RUNNING"})
    if pool.usage > READY_QUEUE_USAGE:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"code": "QUEUE_NEARLY_FULL"})
    return {"status": "ready", "mode": "async", "queue_size": pool.size, "queue_capacity": pool.capacity}
