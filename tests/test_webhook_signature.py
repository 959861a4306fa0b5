from __future__ import annotations

import hashlib
import hmac

import pytest

from prcli.core.errors import WebhookPayloadError
from prcli.models.webhook import POST_MERGE_TRIGGER, WebhookEvent
from prcli.services.webhook.signature import repository_allowed, validate_github_signature, validate_gitlab_token


def test_github_signature() -> None:
    body = b'{"action": "created"}'
    digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    assert validate_github_signature("s3cret", body, f"sha256={digest}") is True
    assert validate_github_signature("s3cret", body, f"sha1={digest}") is False
    assert validate_github_signature("s3cret", body + b" ", f"sha256={digest}") is False
    assert validate_github_signature("s3cret", body, None) is False
    assert validate_github_signature(None, body, None) is True


def test_gitlab_token() -> None:
    assert validate_gitlab_token("s3cret", "s3cret") is True
    assert validate_gitlab_token("s3cret", "other") is False
    assert validate_gitlab_token("", None) is True


@pytest.mark.parametrize(
    ("allowed", "owner", "repo", "expected"),
    [
        ([], "anyone", "anything", True),
        (["*"], "anyone", "anything", True),
        (["acme/*"], "ACME", "widgets", True),
        (["acme/widgets"], "acme", "widgets", True),
        (["acme/widgets"], "acme", "gadgets", False),
        (["other/*"], "acme", "widgets", False),
    ],
)
def test_repository_allowed(allowed: list[str], owner: str, repo: str, expected: bool) -> None:
    assert repository_allowed(allowed, owner, repo) is expected


def test_github_event_requires_created_pr_comment() -> None:
    payload = {
        "action": "edited",
        "issue": {"number": 1, "pull_request": {}},
        "comment": {"body": "/lgtm", "user": {"login": "bob"}},
        "repository": {"full_name": "acme/widgets"},
    }

    assert WebhookEvent.from_github("issue_comment", payload) is None
    assert WebhookEvent.from_github("pull_request", payload) is None


def test_gitlab_event_for_issue_note_is_ignored() -> None:
    payload = {"object_attributes": {"note": "/lgtm", "noteable_type": "Issue"}}

    assert WebhookEvent.from_gitlab("Note Hook", payload) is None


def test_gitlab_event_with_nested_group() -> None:
    payload = {
        "user": {"username": "carol"},
        "project": {"path_with_namespace": "acme/platform/widgets"},
        "object_attributes": {"note": "/rebase", "noteable_type": "MergeRequest"},
        "merge_request": {"iid": 7},
    }

    event = WebhookEvent.from_gitlab("Note Hook", payload)

    assert event is not None
    assert (event.owner, event.repo, event.full_name) == ("acme/platform", "widgets", "acme/platform/widgets")


def test_malformed_gitlab_event_raises() -> None:
    with pytest.raises(WebhookPayloadError):
        WebhookEvent.from_gitlab("Note Hook", {"object_attributes": {"noteable_type": "MergeRequest"}})


def test_github_merge_becomes_post_merge_event() -> None:
    payload = {
        "action": "closed",
        "pull_request": {"number": 42, "merged": True},
        "repository": {"full_name": "acme/widgets"},
        "sender": {"login": "alice"},
    }

    event = WebhookEvent.from_github("pull_request", payload)

    assert event is not None
    assert event.kind == "merged"
    assert event.comment == POST_MERGE_TRIGGER
    assert (event.full_name, event.pr_num, event.sender) == ("acme/widgets", 42, "alice")


def test_malformed_github_merge_raises() -> None:
    with pytest.raises(WebhookPayloadError):
        WebhookEvent.from_github("pull_request", {"action": "closed", "pull_request": {"merged": True}})


def test_gitlab_merge_request_update_is_ignored() -> None:
    payload = {"object_attributes": {"iid": 7, "action": "update"}}

    assert WebhookEvent.from_gitlab("Merge Request Hook", payload) is None
