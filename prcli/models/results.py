from __future__ import annotations

from dataclasses import dataclass, field

from prcli.models.commands import CommandKind, SubCommand


@dataclass(frozen=True)
class SubCommandResult:
    command: str
    args: tuple[str, ...] = ()
    success: bool = True
    error: BaseException | None = None

    @property
    def display(self) -> str:
        return SubCommand(command=self.command, args=self.args).display


@dataclass
class ExecutionResult:
    command_kind: CommandKind
    success: bool
    error: BaseException | None = None
    sub_results: list[SubCommandResult] = field(default_factory=list)

    @classmethod
    def ok(cls, kind: CommandKind) -> "ExecutionResult":
        return cls(command_kind=kind, success=True)

    @classmethod
    def failed(cls, kind: CommandKind, error: BaseException | None) -> "ExecutionResult":
        return cls(command_kind=kind, success=False, error=error)

    @classmethod
    def from_sub_results(cls, results: list[SubCommandResult]) -> "ExecutionResult":
        return cls(
            command_kind="MULTI",
            success=all(result.success for result in results),
            sub_results=list(results),
        )

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, object]:
        return {
            "command_kind": self.command_kind,
            "success": self.success,
            "error": str(self.error) if self.error is not None else None,
            "sub_results": [
                {
                    "command": row.command,
                    "args": list(row.args),
                    "success": row.success,
                    "error": str(row.error) if row.error is not None else None,
                }
                for row in self.sub_results
            ],
        }
