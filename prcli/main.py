from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from prcli import __version__
from prcli.api.health import router as health_router
from prcli.api.metrics import router as metrics_router
from prcli.api.middleware import RateLimiter, RateLimitMiddleware, RequestLogMiddleware, SecurityHeadersMiddleware
from prcli.api.webhook import build_router as build_webhook_router
from prcli.core.config import Settings, settings as default_settings
from prcli.core.logging import configure_logging
from prcli.services.executor.metrics import PrometheusMetrics
from prcli.services.webhook.processor import Dispatcher, WebhookProcessor
from prcli.services.webhook.worker import WebhookWorkerPool

configure_logging()


def create_application(
    settings: Settings | None = None,
    *,
    dispatcher: Dispatcher | None = None,
) -> FastAPI:
    resolved = settings or default_settings

    metrics = PrometheusMetrics()
    processor = (
        WebhookProcessor(resolved, metrics, dispatcher=dispatcher)
        if dispatcher is not None
        else WebhookProcessor(resolved, metrics)
    )
    pool = (
        WebhookWorkerPool(
            processor.run,
            metrics,
            worker_count=resolved.worker_count,
            queue_size=resolved.queue_size,
        )
        if resolved.async_processing
        else None
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if pool is not None:
            pool.start()
        try:
            yield
        finally:
            if pool is not None:
                await run_in_threadpool(pool.stop)

    app = FastAPI(title="pr-cli", version=__version__, lifespan=lifespan)
    app.state.settings = resolved
    app.state.metrics = metrics
    app.state.webhook_processor = processor
    app.state.webhook_pool = pool

    app.add_middleware(RequestLogMiddleware)
    if resolved.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(resolved.rate_limit_requests))
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(build_webhook_router(resolved.webhook_path))
    return app
