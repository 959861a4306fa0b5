from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExecutionConfig:
    validate_sender: bool
    validate_pr_state: bool
    debug: bool
    post_errors_as_comments: bool
    return_errors: bool
    stop_on_first_error: bool


@dataclass(frozen=True)
class CliProfile:
    """Interactive runs: errors surface so automation gets a non-zero exit."""

    debug: bool = False


@dataclass(frozen=True)
class WebhookProfile:
    """Service runs: the outcome is posted on the PR and never crashes the server."""


Profile = CliProfile | WebhookProfile


def execution_config(profile: Profile) -> ExecutionConfig:
    if isinstance(profile, CliProfile):
        return ExecutionConfig(
            validate_sender=False,
            validate_pr_state=True,
            debug=profile.debug,
            post_errors_as_comments=True,
            return_errors=True,
            stop_on_first_error=False,
        )
    if isinstance(profile, WebhookProfile):
        return ExecutionConfig(
            validate_sender=True,
            validate_pr_state=True,
            debug=False,
            post_errors_as_comments=True,
            return_errors=False,
            stop_on_first_error=False,
        )
    raise TypeError(f"unsupported execution profile: {profile!r}")


CLI_CONFIG = execution_config(CliProfile())
WEBHOOK_CONFIG = execution_config(WebhookProfile())
