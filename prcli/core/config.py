from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "pr-cli"
    env: str = "dev"
    log_level: str = "INFO"

    # Platform / pull request coordinates. The CLI overrides these per invocation.
    platform: str = "github"
    token: str = ""
    comment_token: str | None = None
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

    # Webhook service
    webhook_secret: str | None = None
    allowed_repos: list[str] = Field(default_factory=list)
    webhook_path: str = "/webhook"
    host: str = "0.0.0.0"
    port: int = 8080
    async_processing: bool = True
    worker_count: int = 10
    queue_size: int = 100
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100  # per client IP per minute
    post_merge_cherry_pick: bool = True

    model_config = SettingsConfigDict(
        env_prefix="PR_CLI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
