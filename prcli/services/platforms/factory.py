from __future__ import annotations

import httpx

from prcli.core.errors import ConfigError
from prcli.services.platforms.base import RestClient
from prcli.services.platforms.github import GitHubClient
from prcli.services.platforms.gitlab import GitLabClient

CLIENTS: dict[str, type[GitHubClient] | type[GitLabClient]] = {
    "github": GitHubClient,
    "gitlab": GitLabClient,
}


def create_client(
    platform: str,
    *,
    token: str,
    owner: str,
    repo: str,
    pr_num: int,
    base_url: str | None = None,
    self_check_name: str = "",
    timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> RestClient:
    client_cls = CLIENTS.get(platform)
    if client_cls is None:
        raise ConfigError(f"unsupported platform: {platform}")
    return client_cls(
        token=token,
        owner=owner,
        repo=repo,
        pr_num=pr_num,
        base_url=base_url,
        self_check_name=self_check_name,
        timeout=timeout,
        transport=transport,
    )
