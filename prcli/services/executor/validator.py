from __future__ import annotations

from prcli.core.errors import ValidationFailedError
from prcli.models.commands import SubCommand
from prcli.services.executor.commands import is_builtin, requires_pr_state
from prcli.services.executor.context import ExecutionContext
from prcli.services.executor.parser import normalize

PR_STATE_RULE = "pr_state"
SENDER_RULE = "comment_sender"


class Validator:
    """Pre-execution checks: the PR must be open and the sender must have posted the trigger."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context

    def validate_single(self, command: str) -> None:
        if is_builtin(command):
            return
        config = self.context.config
        if config.validate_pr_state and requires_pr_state(command):
            self._check_pr_open()
        if config.validate_sender and not config.debug:
            self._check_sender_posted_trigger()

    def validate_multi(self, sub_commands: list[SubCommand], raw_lines: tuple[str, ...] | list[str]) -> None:
        config = self.context.config
        needs_pr_state = any(requires_pr_state(sub.command) for sub in sub_commands)
        if config.validate_pr_state and needs_pr_state:
            self._check_pr_open()
        if config.validate_sender and not config.debug:
            self._check_sender_posted_lines(raw_lines)

    def _check_pr_open(self) -> None:
        try:
            self.context.facade.check_pr_state("open")
        except ValidationFailedError:
            raise
        except Exception as exc:
            raise ValidationFailedError(PR_STATE_RULE, str(exc)) from exc

    def _sender_bodies(self) -> list[str]:
        try:
            comments = self.context.facade.list_comments_cached()
        except Exception as exc:
            raise ValidationFailedError(SENDER_RULE, f"failed to get PR comments: {exc}") from exc
        sender = self.context.sender.casefold()
        return [normalize(comment.body) for comment in comments if comment.author.casefold() == sender]

    def _check_sender_posted_trigger(self) -> None:
        trigger = normalize(self.context.trigger_comment)
        for body in self._sender_bodies():
            if body == trigger or trigger in body:
                self.context.logger.info("comment_sender_validated", sender=self.context.sender)
                return
        raise ValidationFailedError(
            SENDER_RULE,
            f"comment sender '{self.context.sender}' did not post a comment containing the trigger",
        )

    def _check_sender_posted_lines(self, raw_lines: tuple[str, ...] | list[str]) -> None:
        if not raw_lines:
            return
        bodies = self._sender_bodies()
        if not bodies:
            raise ValidationFailedError(SENDER_RULE, f"comment sender '{self.context.sender}' did not post any comment")

        missing = [line for line in raw_lines if not any(normalize(line) in body for body in bodies)]
        if missing:
            raise ValidationFailedError(
                SENDER_RULE,
                f"comment sender '{self.context.sender}' did not post commands: {', '.join(missing)}",
            )
        self.context.logger.info("multi_command_sender_validated", sender=self.context.sender)
