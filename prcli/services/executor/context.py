from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from prcli.core.logging import logger as default_logger
from prcli.models.platform import Comment
from prcli.services.executor.cancel import NEVER_CANCELLED, CancelToken
from prcli.services.executor.metrics import MetricsSink, NoOpMetrics
from prcli.services.executor.profiles import ExecutionConfig


class PlatformFacade(Protocol):
    """What the executor needs from the pull request it acts on."""

    def run(self, command: str, args: Sequence[str]) -> None: ...

    def post_comment(self, body: str) -> None: ...

    def check_pr_state(self, expected: str) -> None: ...

    def list_comments_cached(self) -> list[Comment]: ...


@dataclass
class ExecutionContext:
    facade: PlatformFacade
    config: ExecutionConfig
    platform: str
    sender: str = ""
    trigger_comment: str = ""
    metrics: MetricsSink = field(default_factory=NoOpMetrics)
    cancel_token: CancelToken = NEVER_CANCELLED
    logger: Any = default_logger
