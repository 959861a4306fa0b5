from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

CommandKind = Literal["SINGLE", "BUILT_IN", "MULTI"]


class SubCommand(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    command: str
    args: tuple[str, ...] = ()

    @property
    def display(self) -> str:
        if self.args:
            return f"/{self.command} {' '.join(self.args)}"
        return f"/{self.command}"


class ParsedCommand(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: CommandKind
    command: str = ""
    args: tuple[str, ...] = ()
    lines: tuple[str, ...] = ()
    raw_lines: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_shape(self) -> "ParsedCommand":
        if self.kind == "MULTI":
            if self.command or self.args:
                raise ValueError("multi command must not carry a command keyword")
        elif self.lines or self.raw_lines:
            raise ValueError(f"{self.kind.lower()} command must not carry command lines")
        elif not self.command:
            raise ValueError("command keyword is required")
        return self

    def as_sub_command(self) -> SubCommand:
        return SubCommand(command=self.command, args=self.args)


class CherryPickRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    repo_url: str
    token: str = Field(repr=False)
    owner: str
    repo: str
    pr_id: int = Field(ge=0)
    target_branch: str = Field(min_length=1)
    commits: tuple[str, ...] = Field(min_length=1)

    @property
    def last_commit(self) -> str:
        return self.commits[-1]
