from __future__ import annotations

from prcli.core.errors import AlreadyReportedError, PostFailedError
from prcli.models.results import SubCommandResult
from prcli.services.executor.context import ExecutionContext
from prcli.services.handler import messages

SUMMARY_HEADER = "**Multi-Command Execution Results:**"
SUMMARY_FAILED_SUFFIX = " (⚠️ Some commands failed)"


def format_sub(result: SubCommandResult) -> str:
    if result.success:
        return f"✅ Command `{result.display}` executed successfully"
    return f"❌ Command `{result.display}` failed: {result.error}"


def format_summary(results: list[SubCommandResult]) -> str:
    header = SUMMARY_HEADER
    if any(not result.success for result in results):
        header += SUMMARY_FAILED_SUFFIX
    return f"{header}\n\n" + "\n".join(format_sub(result) for result in results)


class CommandFailedAndPostFailedError(PostFailedError):
    def __init__(self, error: BaseException, post_error: BaseException) -> None:
        self.error = error
        self.post_error = post_error
        super().__init__(f"command failed: {error} (and failed to post error comment: {post_error})")


class ResultRecorder:
    def __init__(self, context: ExecutionContext) -> None:
        self.context = context

    def handle_single_error(self, command: str, error: BaseException) -> BaseException | None:
        """Report a failed command and return the error to surface, if any."""
        config = self.context.config
        log = self.context.logger.bind(command=command)

        if isinstance(error, AlreadyReportedError):
            log.info("error_comment_already_posted", error=str(error.wrapped))
            return error if config.return_errors else None

        if config.post_errors_as_comments:
            try:
                self.context.facade.post_comment(messages.command_error(command, str(error)))
            except Exception as post_error:
                log.error("error_comment_post_failed", error=str(post_error))
                if config.return_errors:
                    return CommandFailedAndPostFailedError(error, post_error)
            else:
                log.info("error_comment_posted")

        if config.return_errors:
            return error

        log.error("command_failed", error=str(error))
        return None

    def post_summary(self, results: list[SubCommandResult]) -> bool:
        try:
            self.context.facade.post_comment(format_summary(results))
        except Exception as exc:
            self.context.logger.error("multi_command_summary_post_failed", error=str(exc))
            return False
        return True
