from __future__ import annotations

from typing import Callable

from prcli.core.config import Settings
from prcli.core.errors import RepositoryNotAllowedError
from prcli.core.logging import logger
from prcli.models.options import RunOptions
from prcli.models.results import ExecutionResult
from prcli.models.webhook import WebhookEvent
from prcli.services.dispatch import dispatch_comment
from prcli.services.executor.metrics import MetricsSink
from prcli.services.executor.profiles import WebhookProfile
from prcli.services.webhook.signature import repository_allowed

Dispatcher = Callable[..., ExecutionResult]


class WebhookProcessor:
    """Turns an accepted webhook event into a dispatch under the webhook profile."""

    def __init__(self, settings: Settings, metrics: MetricsSink, *, dispatcher: Dispatcher = dispatch_comment) -> None:
        self.settings = settings
        self.metrics = metrics
        self.dispatcher = dispatcher

    def screen(self, event: WebhookEvent) -> str | None:
        """Raise for a disallowed repository; otherwise return why the event is ignored, or None."""
        log = logger.bind(platform=event.platform, repo=event.full_name, pr_num=event.pr_num, sender=event.sender)
        if not repository_allowed(self.settings.allowed_repos, event.owner, event.repo):
            log.warning("webhook_repository_rejected")
            raise RepositoryNotAllowedError(event.full_name)

        if event.kind == "merged":
            if not self.settings.post_merge_cherry_pick:
                log.debug("webhook_merge_ignored")
                return "post-merge cherry-pick is disabled"
            return None
        if not event.comment.strip().startswith("/"):
            log.debug("webhook_comment_ignored")
            return "comment is not a command"
        return None

    def options_for(self, event: WebhookEvent) -> RunOptions:
        return RunOptions.from_settings(
            self.settings,
            platform=event.platform,
            owner=event.owner,
            repo=event.repo,
            pr_num=event.pr_num,
            comment_sender=event.sender,
            trigger_comment=event.comment,
            debug=False,
        )

    def run(self, event: WebhookEvent) -> dict[str, object]:
        result = self.dispatcher(self.options_for(event), WebhookProfile(), metrics=self.metrics)
        logger.info(
            "webhook_processed",
            platform=event.platform,
            repo=event.full_name,
            pr_num=event.pr_num,
            kind=event.kind,
            success=result.success,
        )
        return {"status": "processed", "success": result.success, "result": result.to_dict()}

    def handle(self, event: WebhookEvent) -> dict[str, object]:
        reason = self.screen(event)
        if reason is not None:
            return {"status": "ignored", "reason": reason}
        return self.run(event)
