from __future__ import annotations

from typing import Literal, Protocol

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest

Outcome = Literal["success", "failure", "validation_failed", "parse_failed"]


class MetricsSink(Protocol):
    def record_command(self, platform: str, command: str, outcome: Outcome) -> None: ...

    def record_duration(self, platform: str, command: str, duration: float) -> None: ...


class NoOpMetrics:
    """Sink for contexts without a metrics backend (the CLI)."""

    def record_command(self, platform: str, command: str, outcome: Outcome) -> None:
        del platform, command, outcome

    def record_duration(self, platform: str, command: str, duration: float) -> None:
        del platform, command, duration


class PrometheusMetrics:
    """Prometheus collectors for the webhook service.

    Every instance owns its registry so several applications (tests, mostly)
    can live in one process without clashing on collector names.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.commands = Counter(
            "pr_cli_command_execution_total",
            "Total number of commands executed",
            ["platform", "command", "status"],
            registry=self.registry,
        )
        self.durations = Histogram(
            "pr_cli_webhook_processing_duration_seconds",
            "Webhook processing duration in seconds",
            ["platform", "command"],
            registry=self.registry,
        )
        self.webhook_requests = Counter(
            "pr_cli_webhook_requests_total",
            "Total number of webhook requests received",
            ["platform", "event_type", "status"],
            registry=self.registry,
        )
        self.queue_size = Gauge(
            "pr_cli_queue_size",
            "Current size of the webhook job queue",
            registry=self.registry,
        )
        self.active_workers = Gauge(
            "pr_cli_active_workers",
            "Number of running webhook worker threads",
            registry=self.registry,
        )

    def record_command(self, platform: str, command: str, outcome: Outcome) -> None:
        self.commands.labels(platform=platform, command=command, status=outcome).inc()

    def record_duration(self, platform: str, command: str, duration: float) -> None:
        self.durations.labels(platform=platform, command=command).observe(duration)

    def record_webhook_request(self, platform: str, event_type: str, status: str) -> None:
        self.webhook_requests.labels(platform=platform, event_type=event_type, status=status).inc()

    def command_count(self, platform: str, command: str, outcome: Outcome) -> float:
        labels = {"platform": platform, "command": command, "status": outcome}
        return self.registry.get_sample_value("pr_cli_command_execution_total", labels) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
