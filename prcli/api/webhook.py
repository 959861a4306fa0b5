from __future__ import annotations

import json
import uuid

from fastapi import APIRouter, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from prcli.core.config import Settings
from prcli.core.errors import QueueFullError, RepositoryNotAllowedError, WebhookPayloadError
from prcli.core.logging import logger
from prcli.models.webhook import WebhookEvent
from prcli.services.executor.metrics import PrometheusMetrics
from prcli.services.webhook.processor import WebhookProcessor
from prcli.services.webhook.signature import validate_github_signature, validate_gitlab_token
from prcli.services.webhook.worker import WebhookJob, WebhookWorkerPool


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def _metrics(request: Request) -> PrometheusMetrics:
    return request.app.state.metrics


def _pool(request: Request) -> WebhookWorkerPool | None:
    pool = request.app.state.webhook_pool
    return pool if pool is not None and pool.running else None


def _source(request: Request) -> tuple[str, str, str]:
    """Platform, event type and delivery id taken from the request headers."""
    headers = request.headers
    if "X-GitHub-Event" in headers:
        platform, event_type, delivery = "github", headers["X-GitHub-Event"], headers.get("X-GitHub-Delivery")
    elif "X-Gitlab-Event" in headers:
        platform, event_type = "gitlab", headers["X-Gitlab-Event"]
        delivery = headers.get("X-Gitlab-Event-UUID") or headers.get("X-Gitlab-Delivery")
    else:
        raise WebhookPayloadError("missing X-GitHub-Event or X-Gitlab-Event header")
    return platform, event_type, delivery or str(uuid.uuid4())


def _check_signature(request: Request, platform: str, body: bytes, secret: str | None) -> None:
    headers = request.headers
    if platform == "github":
        if not validate_github_signature(secret, body, headers.get("X-Hub-Signature-256")):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"code": "INVALID_SIGNATURE"})
    elif not validate_gitlab_token(secret, headers.get("X-Gitlab-Token")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"code": "INVALID_TOKEN"})


def _parse_event(platform: str, event_type: str, body: bytes) -> WebhookEvent | None:
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise WebhookPayloadError(f"invalid JSON body: {exc}") from exc
    if not isinstance(payload, dict):
        raise WebhookPayloadError("webhook body must be a JSON object")

    if platform == "github":
        return WebhookEvent.from_github(event_type, payload)
    return WebhookEvent.from_gitlab(event_type, payload)


async def receive_webhook(request: Request) -> dict:
    body = await request.body()
    metrics = _metrics(request)
    platform, event_type = "unknown", "unknown"
    try:
        platform, event_type, event_id = _source(request)
        log = logger.bind(event_id=event_id, platform=platform, event_type=event_type)
        _check_signature(request, platform, body, _settings(request).webhook_secret)

        event = _parse_event(platform, event_type, body)
        if event is None:
            metrics.record_webhook_request(platform, event_type, "skipped")
            return {"status": "ignored", "reason": "unsupported event"}

        processor = _processor(request)
        reason = processor.screen(event)
        if reason is not None:
            metrics.record_webhook_request(platform, event_type, "skipped")
            return {"status": "ignored", "reason": reason}

        pool = _pool(request)
        if pool is None:
            outcome = await run_in_threadpool(processor.run, event)
        else:
            pool.submit(WebhookJob(event=event, event_id=event_id))
            log.info("webhook_queued", repo=event.full_name, pr_num=event.pr_num, kind=event.kind)
            outcome = {"status": "queued", "event_id": event_id}
        metrics.record_webhook_request(platform, event_type, "success")
        return outcome
    except HTTPException:
        metrics.record_webhook_request(platform, event_type, "unauthorized")
        raise
    except WebhookPayloadError as exc:
        logger.warning("webhook_payload_rejected", error=str(exc))
        metrics.record_webhook_request(platform, event_type, "invalid")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PAYLOAD", "message": str(exc)},
        ) from exc
    except RepositoryNotAllowedError as exc:
        metrics.record_webhook_request(platform, event_type, "forbidden")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "REPOSITORY_NOT_ALLOWED", "repository": exc.full_name},
        ) from exc
    except QueueFullError as exc:
        metrics.record_webhook_request(platform, event_type, "queue_full")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "QUEUE_FULL", "message": str(exc)},
        ) from exc


def build_router(path: str) -> APIRouter:
    webhook_router = APIRouter(tags=["webhook"])
    webhook_router.add_api_route(path, receive_webhook, methods=["POST"])
    return webhook_router
