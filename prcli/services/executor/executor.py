from __future__ import annotations

import time

from prcli.core.errors import (
    DispatchCancelledError,
    ExecutionFailedError,
    InvalidFormatError,
    NoValidCommandsError,
    ValidationFailedError,
)
from prcli.models.commands import ParsedCommand, SubCommand
from prcli.models.results import ExecutionResult, SubCommandResult
from prcli.services.executor.context import ExecutionContext
from prcli.services.executor.metrics import Outcome
from prcli.services.executor.parser import parse_command, parse_multi_command_lines
from prcli.services.executor.results import ResultRecorder
from prcli.services.executor.validator import Validator

UNKNOWN_COMMAND = "unknown"
MULTI_COMMAND = "multi"


class CommandExecutor:
    """Validates, runs and reports one parsed trigger comment."""

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context
        self.validator = Validator(context)
        self.recorder = ResultRecorder(context)

    def dispatch(self, comment: str) -> ExecutionResult:
        started = time.monotonic()
        try:
            parsed = parse_command(comment)
        except InvalidFormatError as exc:
            self.context.logger.warning("comment_parse_failed", error=str(exc))
            self._record(UNKNOWN_COMMAND, "parse_failed", started)
            return ExecutionResult.failed("SINGLE", self._surface(exc))
        return self.execute(parsed)

    def execute(self, parsed: ParsedCommand) -> ExecutionResult:
        if parsed.kind == "SINGLE":
            return self.execute_single(parsed.command or "", parsed.args)
        if parsed.kind == "BUILT_IN":
            return self.execute_builtin(parsed.command or "", parsed.args)
        return self.execute_multi(parsed.lines, parsed.raw_lines)

    def execute_single(self, command: str, args: tuple[str, ...]) -> ExecutionResult:
        started = time.monotonic()
        log = self.context.logger.bind(command=command)
        log.info("executing_single_command", args=list(args))

        try:
            self.validator.validate_single(command)
        except ValidationFailedError as exc:
            log.warning("command_validation_failed", rule=exc.rule, error=str(exc))
            self._record(command, "validation_failed", started)
            return ExecutionResult.failed("SINGLE", self._surface(exc))

        try:
            self.context.cancel_token.raise_if_cancelled()
            self.context.facade.run(command, args)
        except DispatchCancelledError as exc:
            log.warning("command_cancelled")
            self._record(command, "failure", started)
            return ExecutionResult.failed("SINGLE", exc)
        except Exception as exc:
            self._record(command, "failure", started)
            return ExecutionResult.failed("SINGLE", self.recorder.handle_single_error(command, exc))

        self._record(command, "success", started)
        return ExecutionResult.ok("SINGLE")

    def execute_builtin(self, command: str, args: tuple[str, ...]) -> ExecutionResult:
        started = time.monotonic()
        log = self.context.logger.bind(command=command)
        log.info("executing_builtin_command", args=list(args))
        try:
            self.context.cancel_token.raise_if_cancelled()
            self.context.facade.run(command, args)
        except Exception as exc:
            log.error("builtin_command_failed", error=str(exc))
            self._record(command, "failure", started)
            return ExecutionResult.failed("BUILT_IN", exc)

        self._record(command, "success", started)
        return ExecutionResult.ok("BUILT_IN")

    def execute_multi(self, lines: tuple[str, ...], raw_lines: tuple[str, ...]) -> ExecutionResult:
        started = time.monotonic()
        log = self.context.logger.bind(command=MULTI_COMMAND)
        log.info("executing_multi_command", lines=len(lines))

        try:
            sub_commands = parse_multi_command_lines(lines)
        except NoValidCommandsError as exc:
            log.warning("multi_command_parse_failed", error=str(exc))
            self._record(MULTI_COMMAND, "parse_failed", started)
            return ExecutionResult.failed("MULTI", self._surface(exc))

        try:
            self.validator.validate_multi(sub_commands, raw_lines)
        except ValidationFailedError as exc:
            log.warning("multi_command_validation_failed", rule=exc.rule, error=str(exc))
            self._record(MULTI_COMMAND, "validation_failed", started)
            return ExecutionResult.failed("MULTI", self._surface(exc))

        results: list[SubCommandResult] = []
        for sub in sub_commands:
            try:
                self.context.cancel_token.raise_if_cancelled()
                outcome = self._run_sub_command(sub)
            except DispatchCancelledError as exc:
                log.warning("multi_command_cancelled", completed=len(results))
                self._record(MULTI_COMMAND, "failure", started)
                result = ExecutionResult.from_sub_results(results)
                result.success = False
                result.error = exc
                return result
            results.append(outcome)
            if not outcome.success and self.context.config.stop_on_first_error:
                log.info("multi_command_stopped", failed=sub.command)
                break

        result = ExecutionResult.from_sub_results(results)
        posted = False
        if self.context.config.post_errors_as_comments:
            posted = self.recorder.post_summary(results)

        self._record(MULTI_COMMAND, "success" if result.success else "failure", started)
        if not result.success and not posted and self.context.config.return_errors:
            failed = sum(1 for row in results if not row.success)
            result.error = ExecutionFailedError(MULTI_COMMAND, f"{failed} of {len(results)} commands failed")
        return result

    def _run_sub_command(self, sub: SubCommand) -> SubCommandResult:
        started = time.monotonic()
        self.context.logger.info("executing_sub_command", command=sub.display)
        try:
            self.context.facade.run(sub.command, sub.args)
        except DispatchCancelledError:
            self._record(sub.command, "failure", started)
            raise
        except Exception as exc:
            self.context.logger.error("sub_command_failed", command=sub.command, error=str(exc))
            self._record(sub.command, "failure", started)
            return SubCommandResult(command=sub.command, args=sub.args, success=False, error=exc)
        self._record(sub.command, "success", started)
        return SubCommandResult(command=sub.command, args=sub.args)

    def _surface(self, error: BaseException) -> BaseException | None:
        return error if self.context.config.return_errors else None

    def _record(self, command: str, outcome: Outcome, started: float) -> None:
        metrics = self.context.metrics
        metrics.record_command(self.context.platform, command, outcome)
        metrics.record_duration(self.context.platform, command, time.monotonic() - started)
