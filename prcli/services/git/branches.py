from __future__ import annotations

import re
from urllib.parse import urlsplit

from prcli.core.errors import ConfigError

DEFAULT_HOSTS = {"github": "github.com", "gitlab": "gitlab.com"}
_PUBLIC_API_URLS = {"https://api.github.com", "https://gitlab.com"}
_API_SUFFIX_RE = re.compile(r"/api/v[34]/?$")


def cherry_pick_branch_name(pr_id: int, target_branch: str, commit_sha: str) -> str:
    return f"cherry-pick-{pr_id}-to-{target_branch}-{commit_sha[:7]}"


def sanitize_for_tempdir(branch: str) -> str:
    return branch.replace("/", "-").replace("\\", "-")


def git_host(platform: str, base_url: str | None) -> str:
    """Web host serving clones for an API base URL, e.g. ``https://api.ghe.corp/api/v3`` -> ``ghe.corp``."""
    if platform not in DEFAULT_HOSTS:
        raise ConfigError(f"unsupported platform: {platform}")
    url = (base_url or "").strip().rstrip("/")
    if not url or url in _PUBLIC_API_URLS:
        return DEFAULT_HOSTS[platform]
    url = _API_SUFFIX_RE.sub("", url)
    host = urlsplit(url).netloc if "://" in url else url.split("/", 1)[0]
    if host.startswith("api."):
        host = host[len("api.") :]
    return host or DEFAULT_HOSTS[platform]


def repository_url(platform: str, token: str, owner: str, repo: str, base_url: str | None = None) -> str:
    host = git_host(platform, base_url)
    if platform == "gitlab":
        return f"https://oauth2:{token}@{host}/{owner}/{repo}.git"
    return f"https://{token}@{host}/{owner}/{repo}.git"


def strip_credentials(url: str) -> str:
    if "@" not in url:
        return url
    return "https://" + url.split("@", 1)[1]


def host_from_url(url: str) -> str:
    bare = strip_credentials(url).removeprefix("https://").removeprefix("http://")
    return bare.split("/", 1)[0] or DEFAULT_HOSTS["github"]
