from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from prcli.core.errors import WebhookPayloadError

POST_MERGE_TRIGGER = "/__post-merge-cherry-pick"

EventKind = Literal["comment", "merged"]


class WebhookEvent(BaseModel):
    """A comment on, or the merge of, a pull/merge request, normalised across platforms.

    Merge events carry the post-merge built-in as their ``comment`` so they
    travel the same dispatch path as a typed command.
    """

    model_config = ConfigDict(frozen=True)

    platform: str
    owner: str
    repo: str
    pr_num: int
    sender: str
    comment: str
    kind: EventKind = "comment"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_github(cls, event_type: str, payload: dict[str, Any]) -> "WebhookEvent | None":
        """Returns None for events that are neither new PR comments nor merges."""
        if event_type == "pull_request":
            return cls._github_merge(payload)
        if event_type != "issue_comment" or payload.get("action") != "created":
            return None
        try:
            issue = payload["issue"]
            if "pull_request" not in issue:
                return None
            owner, repo = payload["repository"]["full_name"].split("/", 1)
            return cls(
                platform="github",
                owner=owner,
                repo=repo,
                pr_num=issue["number"],
                sender=payload["comment"]["user"]["login"],
                comment=payload["comment"].get("body") or "",
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise WebhookPayloadError(f"malformed GitHub issue_comment payload: {exc}") from exc

    @classmethod
    def _github_merge(cls, payload: dict[str, Any]) -> "WebhookEvent | None":
        if payload.get("action") != "closed":
            return None
        try:
            pull_request = payload["pull_request"]
            if not pull_request.get("merged"):
                return None
            owner, repo = payload["repository"]["full_name"].split("/", 1)
            return cls(
                platform="github",
                owner=owner,
                repo=repo,
                pr_num=pull_request["number"],
                sender=payload["sender"]["login"],
                comment=POST_MERGE_TRIGGER,
                kind="merged",
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise WebhookPayloadError(f"malformed GitHub pull_request payload: {exc}") from exc

    @classmethod
    def from_gitlab(cls, event_type: str, payload: dict[str, Any]) -> "WebhookEvent | None":
        if event_type == "Merge Request Hook":
            return cls._gitlab_merge(payload)
        if event_type != "Note Hook":
            return None
        try:
            attributes = payload["object_attributes"]
            if attributes.get("noteable_type") != "MergeRequest":
                return None
            owner, repo = payload["project"]["path_with_namespace"].rsplit("/", 1)
            return cls(
                platform="gitlab",
                owner=owner,
                repo=repo,
                pr_num=payload["merge_request"]["iid"],
                sender=payload["user"]["username"],
                comment=attributes.get("note") or "",
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise WebhookPayloadError(f"malformed GitLab note payload: {exc}") from exc

    @classmethod
    def _gitlab_merge(cls, payload: dict[str, Any]) -> "WebhookEvent | None":
        try:
            attributes = payload["object_attributes"]
            if attributes.get("action") != "merge":
                return None
            owner, repo = payload["project"]["path_with_namespace"].rsplit("/", 1)
            return cls(
                platform="gitlab",
                owner=owner,
                repo=repo,
                pr_num=attributes["iid"],
                sender=payload["user"]["username"],
                comment=POST_MERGE_TRIGGER,
                kind="merged",
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise WebhookPayloadError(f"malformed GitLab merge request payload: {exc}") from exc
