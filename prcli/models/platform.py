from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PullRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: int
    title: str = ""
    state: str
    merged: bool = False
    author: str = ""
    body: str = ""
    url: str = ""
    head_branch: str = ""
    head_sha: str = ""
    base_branch: str = ""


class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = 0
    author: str
    body: str = ""
    url: str = ""


class Commit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sha: str
    message: str = ""
    author: str = ""


class CheckRun(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = 0
    name: str
    status: str = ""
    conclusion: str = ""
    url: str = ""

    @property
    def passed(self) -> bool:
        return self.status == "completed" and self.conclusion in {"success", "neutral", "skipped"}


class Issue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    number: int
    title: str = ""
    state: str = ""
    body: str = ""
    url: str = ""


class ChecksStatus(BaseModel):
    model_config = ConfigDict(extra="forbid")

    all_passed: bool
    failed: list[CheckRun] = Field(default_factory=list)
