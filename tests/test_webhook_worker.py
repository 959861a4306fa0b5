from __future__ import annotations

import threading

import pytest

from prcli.core.errors import QueueFullError
from prcli.models.webhook import WebhookEvent
from prcli.services.executor.metrics import PrometheusMetrics
from prcli.services.webhook.worker import WebhookJob, WebhookWorkerPool


def _job(pr_num: int = 42) -> WebhookJob:
    event = WebhookEvent(platform="github", owner="acme", repo="widgets", pr_num=pr_num, sender="bob", comment="/lgtm")
    return WebhookJob(event=event, event_id=f"evt-{pr_num}")


def test_jobs_are_handled_by_workers() -> None:
    handled: list[int] = []
    lock = threading.Lock()

    def handler(event: WebhookEvent) -> None:
        with lock:
            handled.append(event.pr_num)

    metrics = PrometheusMetrics()
    pool = WebhookWorkerPool(handler, metrics, worker_count=3, queue_size=10)
    pool.start()
    try:
        for number in range(1, 6):
            pool.submit(_job(number))
        pool.join()
    finally:
        pool.stop(timeout=5)

    assert sorted(handled) == [1, 2, 3, 4, 5]
    assert metrics.registry.get_sample_value("pr_cli_active_workers") == 0
    assert pool.running is False


def test_failing_job_does_not_stop_the_worker() -> None:
    handled: list[int] = []

    def handler(event: WebhookEvent) -> None:
        if event.pr_num == 1:
            raise RuntimeError("platform exploded")
        handled.append(event.pr_num)

    pool = WebhookWorkerPool(handler, PrometheusMetrics(), worker_count=1, queue_size=5)
    pool.start()
    try:
        pool.submit(_job(1))
        pool.submit(_job(2))
        pool.join()
    finally:
        pool.stop(timeout=5)

    assert handled == [2]


def test_full_queue_rejects_new_jobs() -> None:
    metrics = PrometheusMetrics()
    pool = WebhookWorkerPool(lambda event: None, metrics, worker_count=1, queue_size=1)

    pool.submit(_job(1))
    with pytest.raises(QueueFullError) as exc_info:
        pool.submit(_job(2))

    assert exc_info.value.capacity == 1
    assert pool.usage == 1.0
    assert metrics.registry.get_sample_value("pr_cli_queue_size") == 1


def test_start_and_stop_are_idempotent() -> None:
    pool = WebhookWorkerPool(lambda event: None, PrometheusMetrics(), worker_count=2, queue_size=2)

    pool.start()
    pool.start()
    assert pool.running is True

    pool.stop(timeout=5)
    pool.stop(timeout=5)
    assert pool.running is False
