from __future__ import annotations

from enum import Enum

from prcli.core.redaction import redact_tokens


class PRCliError(Exception):
    """Base class for every error the dispatcher reports."""

    kind = "Error"


class ConfigError(PRCliError):
    kind = "ConfigError"


class InvalidFormatError(PRCliError):
    kind = "InvalidFormat"


class NoValidCommandsError(PRCliError):
    kind = "NoValidCommands"

    def __init__(self, message: str = "no valid commands found in multi-line comment") -> None:
        super().__init__(message)


class ValidationFailedError(PRCliError):
    kind = "ValidationFailed"

    def __init__(self, rule: str, reason: str) -> None:
        self.rule = rule
        self.reason = reason
        super().__init__(f"{rule} validation failed: {reason}")


class ExecutionFailedError(PRCliError):
    kind = "ExecutionFailed"

    def __init__(self, command: str, message: str) -> None:
        self.command = command
        super().__init__(message)


class CherryPickReason(str, Enum):
    CLONE_FAILED = "CloneFailed"
    FETCH_FAILED = "FetchFailed"
    CONFLICT_UNRESOLVABLE = "ConflictUnresolvable"
    EMPTY_COMMIT_SKIP_FAILED = "EmptyCommitSkipFailed"
    PUSH_FAILED = "PushFailed"
    CANCELLED = "Cancelled"


class CherryPickFailedError(PRCliError):
    kind = "CherryPickFailed"

    def __init__(self, reason: CherryPickReason, message: str, *, commit: str | None = None) -> None:
        self.reason = reason
        self.commit = commit
        super().__init__(redact_tokens(message))


class PlatformAPIError(PRCliError):
    kind = "PlatformAPIError"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(redact_tokens(message))


class PostFailedError(PRCliError):
    kind = "PostFailed"


class DispatchCancelledError(PRCliError):
    kind = "Cancelled"

    def __init__(self, message: str = "dispatch cancelled") -> None:
        super().__init__(message)


class AlreadyReportedError(PRCliError):
    """Wraps an error whose explanation has already been posted on the pull request."""

    kind = "AlreadyReported"

    def __init__(self, wrapped: BaseException) -> None:
        self.wrapped = wrapped
        super().__init__(str(wrapped))


class WebhookPayloadError(PRCliError):
    kind = "InvalidPayload"


class RepositoryNotAllowedError(PRCliError):
    kind = "RepositoryNotAllowed"

    def __init__(self, full_name: str) -> None:
        self.full_name = full_name
        super().__init__(f"repository {full_name} is not allowed")


class QueueFullError(PRCliError):
    kind = "QueueFull"

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(f"webhook job queue is full ({capacity} jobs)")
