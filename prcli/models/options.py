from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from prcli.core.config import Settings
from prcli.core.errors import ConfigError


class RunOptions(BaseModel):
    """Everything one dispatch needs to know about its pull request and policies."""

    model_config = ConfigDict(extra="ignore")

    platform: str = "github"
    token: str = Field(default="", repr=False)
    comment_token: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    owner: str = ""
    repo: str = ""
    pr_num: int = 0
    comment_sender: str = ""
    trigger_comment: str = ""
    debug: bool = False
    lgtm_threshold: int = 1
    lgtm_permissions: list[str] = Field(default_factory=lambda: ["admin", "write"])
    merge_method: str = "rebase"
    self_check_name: str = "pr-cli"
    robot_accounts: list[str] = Field(default_factory=list)
    git_identity_domain: str = "alaudadevops.com"
    request_timeout_seconds: float = 30.0
    command_timeout_seconds: float = 600.0

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "RunOptions":
        data = settings.model_dump(include=set(cls.model_fields))
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**data)

    def ensure_complete(self) -> None:
        required = (
            ("platform", self.platform),
            ("token", self.token),
            ("owner", self.owner),
            ("repo", self.repo),
            ("pr_num", self.pr_num > 0),
            ("comment_sender", self.comment_sender),
            ("trigger_comment", self.trigger_comment),
        )
        for name, value in required:
            if not value:
                raise ConfigError(f"{name} is required")
        if self.platform not in {"github", "gitlab"}:
            raise ConfigError(f"unsupported platform: {self.platform}")
