from __future__ import annotations

from dataclasses import dataclass

BUILTIN_PREFIX = "__"


@dataclass(frozen=True)
class CommandSpec:
    name: str
    usage: str
    description: str
    requires_pr_state: bool = True
    allowed_in_batch: bool = True


# The keyword set is closed: the parser regex, the validator and /help are all derived from this table.
COMMANDS: tuple[CommandSpec, ...] = (
    CommandSpec("help", "/help", "Display this help message"),
    CommandSpec("rebase", "/rebase", "Rebase the PR branch against base"),
    CommandSpec("lgtm", "/lgtm", "Approve the PR (requires permissions)", allowed_in_batch=False),
    CommandSpec(
        "remove-lgtm",
        "/remove-lgtm or /lgtm cancel",
        "Dismiss your approval (requires permissions)",
        allowed_in_batch=False,
    ),
    CommandSpec(
        "cherry-pick",
        "/cherry-pick <branch>",
        "Create a cherry-pick PR to a different branch",
        requires_pr_state=False,
    ),
    CommandSpec(
        "cherrypick",
        "/cherrypick <branch>",
        "Alias for cherry-pick",
        requires_pr_state=False,
    ),
    CommandSpec("assign", "/assign user1 user2 ...", "Assign reviewers to the PR"),
    CommandSpec("merge", "/merge [method]", "Merge the PR after checking checks and LGTM status"),
    CommandSpec("ready", "/ready [method]", "Alias for merge"),
    CommandSpec("unassign", "/unassign user1 user2 ...", "Remove assigned reviewers"),
    CommandSpec("label", "/label label1 label2 ...", "Add labels to the PR"),
    CommandSpec("unlabel", "/unlabel label1 label2 ...", "Remove labels from the PR"),
    CommandSpec("check", "/check [/cmd1 args... /cmd2 args...]", "Show LGTM and check status, or run commands"),
    CommandSpec("retest", "/retest", "Trigger retest of failed checks"),
    CommandSpec("close", "/close", "Close the PR without merging"),
    CommandSpec(
        "batch",
        "/batch /cmd1 args... /cmd2 args...",
        "Execute multiple commands in batch mode",
        allowed_in_batch=False,
    ),
    CommandSpec("checkbox", "/checkbox", "Tick every unchecked checkbox in the PR description"),
    CommandSpec("checkbox-issue", "/checkbox-issue <issue>", "Tick every unchecked checkbox in an issue"),
)

COMMANDS_BY_NAME: dict[str, CommandSpec] = {spec.name: spec for spec in COMMANDS}

# Whole-line rewrites applied once before the keyword is matched again.
LINE_ALIASES: dict[str, str] = {
    "/lgtm cancel": "/remove-lgtm",
}


def is_builtin(command: str) -> bool:
    return command.startswith(BUILTIN_PREFIX)


def requires_pr_state(command: str) -> bool:
    if is_builtin(command):
        return False
    spec = COMMANDS_BY_NAME.get(command)
    return spec.requires_pr_state if spec is not None else True


def allowed_in_batch(command: str) -> bool:
    if is_builtin(command):
        return False
    spec = COMMANDS_BY_NAME.get(command)
    return spec.allowed_in_batch if spec is not None else True


def apply_line_alias(line: str) -> str:
    return LINE_ALIASES.get(line, line)
