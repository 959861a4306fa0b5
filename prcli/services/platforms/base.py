from __future__ import annotations

from typing import Any, Protocol

import httpx

from prcli.core.errors import PlatformAPIError, ValidationFailedError
from prcli.core.logging import logger
from prcli.models.platform import ChecksStatus, Comment, Commit, Issue, PullRequest


class GitClient(Protocol):
    """Operations the PR handler performs against a Git hosting platform."""

    owner: str
    repo: str
    pr_num: int

    def get_pr(self) -> PullRequest: ...

    def check_pr_status(self, expected: str) -> None: ...

    def post_comment(self, body: str) -> Comment: ...

    def get_comments(self) -> list[Comment]: ...

    def update_pr_body(self, body: str) -> None: ...

    def get_issue(self, number: int) -> Issue: ...

    def update_issue_body(self, number: int, body: str) -> None: ...

    def get_user_permission(self, username: str) -> str: ...

    def approve_pr(self, body: str) -> None: ...

    def dismiss_approval(self, message: str) -> bool:
        """Dismiss the latest approval made by the authenticated account."""
        ...

    def assign_reviewers(self, reviewers: list[str]) -> None: ...

    def remove_reviewers(self, reviewers: list[str]) -> None: ...

    def add_labels(self, labels: list[str]) -> None: ...

    def remove_labels(self, labels: list[str]) -> None: ...

    def merge_pr(self, method: str) -> None: ...

    def close_pr(self) -> None: ...

    def rebase_pr(self) -> None: ...

    def get_commits(self) -> list[Commit]: ...

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest: ...

    def check_runs_status(self) -> ChecksStatus: ...

    def rerun_failed_checks(self) -> list[str]: ...


def pr_state(pr: PullRequest) -> str:
    return "merged" if pr.merged else pr.state


class RestClient:
    """Shared httpx plumbing for the platform clients."""

    platform = "rest"

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str],
        owner: str,
        repo: str,
        pr_num: int,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.pr_num = pr_num
        self.log = logger.bind(platform=self.platform, owner=owner, repo=repo, pr_num=pr_num)
        self._http = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "RestClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise PlatformAPIError(
                f"{method} {path} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._request(method, path, **kwargs)
        if not response.content:
            return None
        return response.json()

    def check_pr_status(self, expected: str) -> None:
        state = pr_state(self.get_pr())  # type: ignore[attr-defined]
        if state != expected:
            raise ValidationFailedError("pr_state", f"PR #{self.pr_num} is {state}, expected {expected}")
