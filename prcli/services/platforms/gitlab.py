from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from prcli.core.errors import PlatformAPIError
from prcli.models.platform import CheckRun, ChecksStatus, Comment, Commit, Issue, PullRequest
from prcli.services.platforms.base import RestClient

DEFAULT_API_URL = "https://gitlab.com/api/v4"
_PAGE_SIZE = 100

# Project access levels mapped onto the GitHub permission vocabulary used by lgtm_permissions.
_ACCESS_LEVELS = ((40, "admin"), (30, "write"), (10, "read"))

_JOB_STATES = {
    "success": ("completed", "success"),
    "failed": ("completed", "failure"),
    "canceled": ("completed", "cancelled"),
    "skipped": ("completed", "skipped"),
    "manual": ("completed", "skipped"),
}


def _api_url(base_url: str | None) -> str:
    url = (base_url or "").rstrip("/")
    if not url or url == "https://gitlab.com":
        return DEFAULT_API_URL
    return url if url.endswith("/api/v4") else f"{url}/api/v4"


class GitLabClient(RestClient):
    """GitLab REST v4 client scoped to one merge request."""

    platform = "gitlab"

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
            base_url=_api_url(base_url),
            headers={"PRIVATE-TOKEN": token},
            owner=owner,
            repo=repo,
            pr_num=pr_num,
            timeout=timeout,
            transport=transport,
        )
        self.self_check_name = self_check_name
        self._project_path = f"/projects/{quote(f'{owner}/{repo}', safe='')}"
        self._mr_path = f"{self._project_path}/merge_requests/{pr_num}"

    def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = "1"
        while page:
            response = self._request("GET", path, params={**(params or {}), "per_page": _PAGE_SIZE, "page": page})
            items.extend(response.json())
            page = response.headers.get("X-Next-Page", "")
        return items

    @staticmethod
    def _merge_request(payload: dict[str, Any]) -> PullRequest:
        state = payload.get("state") or ""
        return PullRequest(
            number=payload["iid"],
            title=payload.get("title") or "",
            state="open" if state == "opened" else "closed" if state in {"merged", "locked"} else state,
            merged=state == "merged",
            author=(payload.get("author") or {}).get("username", ""),
            body=payload.get("description") or "",
            url=payload.get("web_url") or "",
            head_branch=payload.get("source_branch") or "",
            head_sha=payload.get("sha") or "",
            base_branch=payload.get("target_branch") or "",
        )

    @staticmethod
    def _note(payload: dict[str, Any]) -> Comment:
        return Comment(
            id=payload.get("id", 0),
            author=(payload.get("author") or {}).get("username", ""),
            body=payload.get("body") or "",
        )

    def _user_id(self, username: str) -> int:
        users = self._json("GET", "/users", params={"username": username.lstrip("@")})
        if not users:
            raise PlatformAPIError(f"user {username} not found", status_code=404)
        return users[0]["id"]

    def get_pr(self) -> PullRequest:
        return self._merge_request(self._json("GET", self._mr_path))

    def post_comment(self, body: str) -> Comment:
        return self._note(self._json("POST", f"{self._mr_path}/notes", json={"body": body}))

    def get_comments(self) -> list[Comment]:
        notes = self._paginate(f"{self._mr_path}/notes", {"sort": "asc", "order_by": "created_at"})
        return [self._note(note) for note in notes if not note.get("system")]

    def update_pr_body(self, body: str) -> None:
        self._request("PUT", self._mr_path, json={"description": body})

    def get_issue(self, number: int) -> Issue:
        payload = self._json("GET", f"{self._project_path}/issues/{number}")
        return Issue(
            number=payload["iid"],
            title=payload.get("title") or "",
            state=payload.get("state") or "",
            body=payload.get("description") or "",
            url=payload.get("web_url") or "",
        )

    def update_issue_body(self, number: int, body: str) -> None:
        self._request("PUT", f"{self._project_path}/issues/{number}", json={"description": body})

    def get_user_permission(self, username: str) -> str:
        try:
            member = self._json("GET", f"{self._project_path}/members/all/{self._user_id(username)}")
        except PlatformAPIError as exc:
            if exc.status_code == 404:
                return "none"
            raise
        level = member.get("access_level", 0)
        for minimum, permission in _ACCESS_LEVELS:
            if level >= minimum:
                return permission
        return "none"

    def approve_pr(self, body: str) -> None:
        self._request("POST", f"{self._mr_path}/approve")
        if body:
            self.post_comment(body)

    def dismiss_approval(self, message: str) -> bool:
        username = self._json("GET", "/user").get("username", "")
        approvals = self._json("GET", f"{self._mr_path}/approvals") or {}
        approvers = [(entry.get("user") or {}).get("username", "") for entry in approvals.get("approved_by", [])]
        if username not in approvers:
            return False
        self._request("POST", f"{self._mr_path}/unapprove")
        if message:
            self.post_comment(message)
        return True

    def _reviewer_ids(self) -> list[int]:
        payload = self._json("GET", self._mr_path)
        return [reviewer["id"] for reviewer in payload.get("reviewers") or []]

    def assign_reviewers(self, reviewers: list[str]) -> None:
        ids = self._reviewer_ids()
        for reviewer in reviewers:
            user_id = self._user_id(reviewer)
            if user_id not in ids:
                ids.append(user_id)
        self._request("PUT", self._mr_path, json={"reviewer_ids": ids})

    def remove_reviewers(self, reviewers: list[str]) -> None:
        removed = {self._user_id(reviewer) for reviewer in reviewers}
        ids = [user_id for user_id in self._reviewer_ids() if user_id not in removed]
        self._request("PUT", self._mr_path, json={"reviewer_ids": ids})

    def add_labels(self, labels: list[str]) -> None:
        self._request("PUT", self._mr_path, json={"add_labels": ",".join(labels)})

    def remove_labels(self, labels: list[str]) -> None:
        self._request("PUT", self._mr_path, json={"remove_labels": ",".join(labels)})

    def merge_pr(self, method: str) -> None:
        if method == "rebase":
            self.rebase_pr()
        self._request("PUT", f"{self._mr_path}/merge", json={"squash": method == "squash"})

    def close_pr(self) -> None:
        self._request("PUT", self._mr_path, json={"state_event": "close"})

    def rebase_pr(self) -> None:
        self._request("PUT", f"{self._mr_path}/rebase")

    def get_commits(self) -> list[Commit]:
        commits = [
            Commit(sha=item["id"], message=item.get("message") or "", author=item.get("author_name") or "")
            for item in self._paginate(f"{self._mr_path}/commits")
        ]
        # newest first on the wire
        return list(reversed(commits))

    def create_pr(self, title: str, body: str, head: str, base: str) -> PullRequest:
        payload = self._json(
            "POST",
            f"{self._project_path}/merge_requests",
            json={"title": title, "description": body, "source_branch": head, "target_branch": base},
        )
        return self._merge_request(payload)

    def _latest_pipeline_id(self) -> int | None:
        pipelines = self._json("GET", f"{self._mr_path}/pipelines") or []
        return pipelines[0]["id"] if pipelines else None

    def _jobs(self, pipeline_id: int) -> list[CheckRun]:
        runs: list[CheckRun] = []
        for job in self._paginate(f"{self._project_path}/pipelines/{pipeline_id}/jobs"):
            if job.get("name") == self.self_check_name:
                continue
            status, conclusion = _JOB_STATES.get(job.get("status") or "", ("in_progress", ""))
            runs.append(
                CheckRun(
                    id=job.get("id", 0),
                    name=job.get("name", ""),
                    status=status,
                    conclusion=conclusion,
                    url=job.get("web_url") or "",
                )
            )
        return runs

    def check_runs_status(self) -> ChecksStatus:
        pipeline_id = self._latest_pipeline_id()
        if pipeline_id is None:
            return ChecksStatus(all_passed=True)
        failed = [run for run in self._jobs(pipeline_id) if not run.passed]
        return ChecksStatus(all_passed=not failed, failed=failed)

    def rerun_failed_checks(self) -> list[str]:
        pipeline_id = self._latest_pipeline_id()
        if pipeline_id is None:
            return []
        failed = [run.name for run in self._jobs(pipeline_id) if run.status == "completed" and not run.passed]
        if failed:
            self._request("POST", f"{self._project_path}/pipelines/{pipeline_id}/retry")
        return failed
