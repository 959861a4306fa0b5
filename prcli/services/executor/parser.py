from __future__ import annotations

import re
import shlex

from prcli.core.errors import InvalidFormatError, NoValidCommandsError
from prcli.models.commands import ParsedCommand, SubCommand
from prcli.services.executor.commands import COMMANDS, apply_line_alias

_ESCAPED_SUFFIXES = ("\\n", "\\r")

_KEYWORDS = "|".join(re.escape(spec.name) for spec in sorted(COMMANDS, key=lambda spec: -len(spec.name)))
COMMAND_RE = re.compile(rf"^/({_KEYWORDS})(\s+.*)?$", re.DOTALL)
BUILTIN_RE = re.compile(r"^/(__[a-z_-]+)(\s+.*)?$", re.DOTALL)


def normalize(comment: str) -> str:
    """Canonical form of a comment body.

    Line endings collapse to ``\\n``, literal ``\\n``/``\\r`` escapes left at the
    end by shell callers are dropped, trailing whitespace is trimmed on every
    line and blank lines disappear. Applying it twice is a no-op.
    """
    text = comment.replace("\r\n", "\n").replace("\r", "\n")
    while True:
        text = text.strip()
        for suffix in _ESCAPED_SUFFIXES:
            if text.endswith(suffix):
                text = text[: -len(suffix)]
                break
        else:
            break
    lines = [line.rstrip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def split_raw_command_lines(comment: str) -> list[str]:
    lines = normalize(comment).split("\n")
    return [line.strip() for line in lines if line.strip().startswith("/")]


def split_command_lines(comment: str) -> list[str]:
    return [_canonical_line(line) for line in split_raw_command_lines(comment)]


def is_multi_line_command(comment: str) -> bool:
    return len(split_raw_command_lines(comment)) > 1


def _canonical_line(line: str) -> str:
    collapsed = " ".join(line.split())
    aliased = apply_line_alias(collapsed)
    return aliased if aliased != collapsed else line


def _split_args(raw: str | None) -> tuple[str, ...]:
    if raw is None or not raw.strip():
        return ()
    try:
        return tuple(shlex.split(raw.strip()))
    except ValueError as exc:
        raise InvalidFormatError(f"invalid command arguments: {exc}") from exc


def parse_command(comment: str) -> ParsedCommand:
    """Turn a trigger comment into a typed command, or raise InvalidFormatError."""
    body = normalize(comment)
    if not body.startswith("/"):
        raise InvalidFormatError("comment must start with /")

    if is_multi_line_command(body):
        return ParsedCommand(
            kind="MULTI",
            lines=tuple(split_command_lines(body)),
            raw_lines=tuple(split_raw_command_lines(body)),
        )

    builtin = BUILTIN_RE.match(body)
    if builtin:
        return ParsedCommand(kind="BUILT_IN", command=builtin.group(1), args=_split_args(builtin.group(2)))

    if not COMMAND_RE.match(body):
        raise InvalidFormatError("invalid command format")

    matched = COMMAND_RE.match(_canonical_line(body))
    if not matched:
        raise InvalidFormatError("invalid command format after transformation")

    return ParsedCommand(kind="SINGLE", command=matched.group(1), args=_split_args(matched.group(2)))


def parse_multi_command_lines(lines: list[str] | tuple[str, ...]) -> list[SubCommand]:
    """Parse each line of a multi command; lines that do not parse are dropped."""
    sub_commands: list[SubCommand] = []
    for line in lines:
        try:
            parsed = parse_command(line)
        except InvalidFormatError:
            continue
        if parsed.kind == "MULTI":
            continue
        sub_commands.append(parsed.as_sub_command())

    if not sub_commands:
        raise NoValidCommandsError()
    return sub_commands
