from __future__ import annotations

from typing import Any

import httpx

from prcli.core.errors import PlatformAPIError
from prcli.models.platform import CheckRun, ChecksStatus, Comment, Commit, Issue, PullRequest
from prcli.services.platforms.base import RestClient

DEFAULT_API_URL = "https://api.github.com"
_PAGE_SIZE = 100


class GitHubClient(RestClient):
    """GitHub REST v3 client scoped to one pull request."""

    platform = "github"

    def __init__(
        self,
        *,
        token: str,
        owner: str,
        repo: str,
        pr_num: int,
        base_url: str | None = None,
        self_check_name: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=(base_url or DEFAULT_API_URL).rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            owner=owner,
            repo=repo,
            pr_num=pr_num,
            timeout=timeout,
            transport=transport,
        )
        self.self_check_name = self_check_name
        self._repo_path = f"/repos/{owner}/{repo}"
        self._pr_path = f"{self._repo_path}/pulls/{pr_num}"
        self._issue_path = f"{self._repo_path}/issues/{pr_num}"

    def _paginate(self, path: str, *, key: str | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: str | None = path
        params: dict[str, Any] | None = {"per_page": _PAGE_SIZE}
        while url:
            response = self._request("GET", url, params=params)
            payload = response.json()
            items.extend(payload[key] if key else payload)
            url = response.links.get("next", {}).get("url")
            params = None
        return items

    @staticmethod
    def _pull_request(payload: dict[str, Any]) -> PullRequest:
        return PullRequest(
            number=payload["number"],
            title=payload.get("title") or "",
            state=payload.get("state") or "",
            merged=bool(payload.get("merged") or payload.get("merged_at")),
            author=(payload.get("user") or {}).get("login", ""),
            body=payload.get("body") or "",
            url=payload.get("html_url") or "",
            head_branch=(payload.get("head") or {}).get("ref", ""),
            head_sha=(payload.get("head") or {}).get("sha", ""),
            base_branch=(payload.get("base") or {}).get("ref", ""),
        )

    @staticmethod
    def _comment(payload: dict[str, Any]) -> Comment:
        return Comment(
            id=payload.get("id", 0),
            author=(payload.get("user") or {}).get("login", ""),
            body=payload.get("body") or "",
            url=payload.get("html_url") or "",
        )

    def get_pr(self) -> PullRequest:
        return self._pull_request(self._json("GET", self._pr_path))

    def post_comment(self, body: str) -> Comment:
        return self._comment(self._json("POST", f"{self._issue_path}/comments", json={"body": body}))

    def get_comments(self) -> list[Comment]:
        return [self._comment(item) for item in self._paginate(f"{self._issue_path}/comments")]

    def update_pr_body(self, body: str) -> None:
        self._request("PATCH", self._pr_path, json={"body": body})

    def get_issue(self, number: int) -> Issue:
        payload = self._json("GET", f"{self._repo_path}/issues/{number}")
        return Issue(
            number=payload["number"],
            title=payload.get("title") or "",
            state=payload.get("state") or "",
            body=payload.get("body") or "",
            url=payload.get("html_url") or "",
        )

    def update_issue_body(self, number: int, body: str) -> None:
        self._request("PATCH", f"{self._repo_path}/issues/{number}", json={"body": body})

    def get_user_permission(self, username: str) -> str:
        try:
            payload = self._json("GET", f"{self._repo_path}/collaborators/{username}/permission")
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                return "none"
            raise
        return payload.get("permission") or "none"

    def approve_pr(self, body: str) -> None:
        self._request("POST", f"{self._pr_path}/reviews", json={"event": "APPROVE", "body": body})

    def dismiss_approval(self, message: str) -> bool:
        login = self._json("GET", "/user").get("login", "")
        reviews = self._paginate(f"{self._pr_path}/reviews")
        approved = [
            review
            for review in reviews
            if review.get("state") == "APPROVED" and (review.get("user") or {}).get("login", "") == login
        ]
        if not approved:
            return False
        review_id = approved[-1]["id"]
        self._request("PUT", f"{self._pr_path}/reviews/{review_id}/dismissals", json={"message": message})
        return True

    def assign_reviewers(self, reviewers: list[str]) -> None:
        self._request("POST", f"{self._pr_path}/requested_reviewers", json={"reviewers": reviewers})

    def remove_reviewers(self, reviewers: list[str]) -> None:
        self._request("DELETE", f"{self._pr_path}/requested_reviewers", json={"reviewers": reviewers})

    def add_labels(self, labels: list[str]) -> None:
        self._request("POST", f"{self._issue_path}/labels", json={"labels": labels})

    def remove_labels(self, labels: list[str]) -> None:
        for label in labels:
            self._request("DELETE", f"{self._issue_path}/labels/{label}")

    def merge_pr(self, method: str) -> None:
        self._request("PUT", f"{self._pr_path}/merge", json={"merge_method": method})

    def close_pr(self) -> None:
        self._request("PATCH", self._pr_path, json={"state": "closed"})

    def rebase_pr(self) -> None:
        self._request("PUT", f"{self._pr_path}/update-branch", json={})

    def get_commits(self) -> list[Commit]:
        return [
            Commit(
                sha=item["sha"],
                message=(item.get("commit") or {}).get("message", ""),
                author=(item.get("author") or {}).get("login", ""),
            )
            for item in self._paginate(f"{self._pr_path}/commits")
        ]

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest:
        payload = self._json(
            "POST",
            f"{self._repo_path}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return self._pull_request(payload)

    def _check_runs(self) -> list[CheckRun]:
        sha = self.get_pr().head_sha
        runs = self._paginate(f"{self._repo_path}/commits/{sha}/check-runs", key="check_runs")
        return [
            CheckRun(
                id=run.get("id", 0),
                name=run.get("name", ""),
                status=run.get("status") or "",
                conclusion=run.get("conclusion") or "",
                url=run.get("html_url") or "",
            )
            for run in runs
            if run.get("name") != self.self_check_name
        ]

    def check_runs_status(self) -> ChecksStatus:
        failed = [run for run in self._check_runs() if not run.passed]
        return ChecksStatus(all_passed=not failed, failed=failed)

    def rerun_failed_checks(self) -> list[str]:
        rerun: list[str] = []
        for run in self._check_runs():
            if run.status == "completed" and not run.passed:
                self._request("POST", f"{self._repo_path}/check-runs/{run.id}/rerequest")
                rerun.append(run.name)
        return rerun
