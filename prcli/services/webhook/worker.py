from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from prcli.core.errors import QueueFullError
from prcli.core.logging import logger
from prcli.models.webhook import WebhookEvent
from prcli.services.executor.metrics import PrometheusMetrics


@dataclass(frozen=True)
class WebhookJob:
    event: WebhookEvent
    event_id: str
    received_at: float = field(default_factory=time.monotonic)


JobHandler = Callable[[WebhookEvent], object]


class WebhookWorkerPool:
    """Bounded in-memory job queue drained by a fixed set of worker threads.

    Jobs live only as long as the process; a full queue rejects new jobs
    instead of blocking the request that submitted them.
    """

    def __init__(
        self,
        handler: JobHandler,
        metrics: PrometheusMetrics,
        *,
        worker_count: int,
        queue_size: int,
    ) -> None:
        self.handler = handler
        self.metrics = metrics
        self.worker_count = max(1, worker_count)
        self.capacity = max(1, queue_size)
        self._queue: queue.Queue[WebhookJob | None] = queue.Queue(maxsize=self.capacity)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return bool(self._threads)

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def usage(self) -> float:
        return self.size / self.capacity

    def start(self) -> None:
        with self._lock:
            if self._threads:
                return
            for index in range(self.worker_count):
                thread = threading.Thread(target=self._work, args=(index,), name=f"pr-cli-worker-{index}", daemon=True)
                thread.start()
                self._threads.append(thread)
        logger.info("webhook_workers_started", workers=self.worker_count, capacity=self.capacity)

    def stop(self, timeout: float | None = None) -> None:
        """Let queued jobs finish, then stop every worker."""
        with self._lock:
            threads, self._threads = self._threads, []
        for _ in threads:
            self._queue.put(None)
        for thread in threads:
            thread.join(timeout)
        logger.info("webhook_workers_stopped", workers=len(threads))

    def submit(self, job: WebhookJob) -> None:
        try:
            self._queue.put_nowait(job)
        except queue.Full as exc:
            logger.error("webhook_queue_full", event_id=job.event_id, capacity=self.capacity)
            raise QueueFullError(self.capacity) from exc
        self.metrics.queue_size.set(self.size)
        logger.debug("webhook_job_enqueued", event_id=job.event_id, queue_size=self.size)

    def join(self) -> None:
        """Block until every submitted job has been processed."""
        self._queue.join()

    def _work(self, index: int) -> None:
        self.metrics.active_workers.inc()
        try:
            while True:
                job = self._queue.get()
                try:
                    if job is None:
                        return
                    self._process(index, job)
                finally:
                    self._queue.task_done()
                    self.metrics.queue_size.set(self.size)
        finally:
            self.metrics.active_workers.dec()

    def _process(self, index: int, job: WebhookJob) -> None:
        event = job.event
        log = logger.bind(
            worker=index,
            event_id=job.event_id,
            platform=event.platform,
            repo=event.full_name,
            pr_num=event.pr_num,
            sender=event.sender,
        )
        log.info("webhook_job_started", waited_seconds=round(time.monotonic() - job.received_at, 3))
        try:
            self.handler(event)
        except Exception:
            # The request that queued the job has already been answered.
            log.exception("webhook_job_failed")
            return
        log.info("webhook_job_finished")
