from __future__ import annotations

from contextlib import ExitStack

from prcli.core.logging import logger
from prcli.models.options import RunOptions
from prcli.models.results import ExecutionResult
from prcli.services.executor.cancel import CancelToken
from prcli.services.executor.context import ExecutionContext
from prcli.services.executor.executor import CommandExecutor
from prcli.services.executor.metrics import MetricsSink, NoOpMetrics
from prcli.services.executor.profiles import Profile, execution_config
from prcli.services.handler.comment_cache import CommentCache
from prcli.services.handler.pr_handler import CherryPickRunner, PRHandler
from prcli.services.platforms.base import GitClient
from prcli.services.platforms.factory import create_client


def _client_for(options: RunOptions, token: str) -> GitClient:
    return create_client(
        options.platform,
        token=token,
        owner=options.owner,
        repo=options.repo,
        pr_num=options.pr_num,
        base_url=options.base_url,
        self_check_name=options.self_check_name,
        timeout=options.request_timeout_seconds,
    )


def dispatch_comment(
    options: RunOptions,
    profile: Profile,
    *,
    metrics: MetricsSink | None = None,
    client: GitClient | None = None,
    comment_client: GitClient | None = None,
    cherry_pick_runner: CherryPickRunner | None = None,
    cancel_token: CancelToken | None = None,
) -> ExecutionResult:
    """Run the trigger comment in ``options`` end to end: parse, validate, execute, report."""
    options.ensure_complete()
    token = cancel_token or CancelToken(timeout_seconds=options.command_timeout_seconds)
    log = logger.bind(
        platform=options.platform,
        owner=options.owner,
        repo=options.repo,
        pr_num=options.pr_num,
        sender=options.comment_sender,
    )

    with ExitStack() as stack:
        if client is None:
            client = _client_for(options, options.token)
            stack.callback(client.close)
        if comment_client is None and options.comment_token and options.comment_token != options.token:
            comment_client = _client_for(options, options.comment_token)
            stack.callback(comment_client.close)

        handler = PRHandler(
            client,
            options,
            comment_client=comment_client,
            cache=CommentCache(client.get_comments),
            cherry_pick_runner=cherry_pick_runner,
            cancel_token=token,
        )
        context = ExecutionContext(
            facade=handler,
            config=execution_config(profile),
            platform=options.platform,
            sender=options.comment_sender,
            trigger_comment=options.trigger_comment,
            metrics=metrics or NoOpMetrics(),
            cancel_token=token,
            logger=log,
        )
        result = CommandExecutor(context).dispatch(options.trigger_comment)

    log.info("dispatch_finished", success=result.success, error=str(result.error) if result.error else None)
    return result
