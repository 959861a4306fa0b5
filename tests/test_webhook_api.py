from __future__ import annotations

import hashlib
import hmac
import json
import threading
from typing import Any

import httpx
from fastapi.testclient import TestClient

from prcli.core.config import Settings
from prcli.main import create_application
from prcli.models.options import RunOptions
from prcli.models.results import ExecutionResult
from prcli.services.executor.profiles import WebhookProfile
from tests.conftest import WEBHOOK_SECRET, RecordingDispatcher


def _github_payload(body: str = "/lgtm", full_name: str = "acme/widgets", sender: str = "bob") -> dict[str, Any]:
    return {
        "action": "created",
        "issue": {"number": 42, "pull_request": {"url": "https://api.github.com/repos/acme/widgets/pulls/42"}},
        "comment": {"body": body, "user": {"login": sender}},
        "repository": {"full_name": full_name},
    }


def _gitlab_payload(note: str = "/rebase") -> dict[str, Any]:
    return {
        "object_kind": "note",
        "user": {"username": "carol"},
        "project": {"path_with_namespace": "other/tools"},
        "object_attributes": {"note": note, "noteable_type": "MergeRequest"},
        "merge_request": {"iid": 7},
    }


def _post_github(
    client: TestClient, payload: object, *, event: str = "issue_comment", secret: str = WEBHOOK_SECRET
) -> httpx.Response:
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return client.post(
        "/webhook",
        content=body,
        headers={
            "X-GitHub-Event": event,
            "X-Hub-Signature-256": f"sha256={signature}",
            "Content-Type": "application/json",
        },
    )


def test_github_comment_is_dispatched(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _github_payload())

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "processed"
    assert data["success"] is True
    assert data["result"]["command_kind"] == "SINGLE"

    (options, profile, kwargs) = dispatcher.calls[0]
    assert isinstance(profile, WebhookProfile)
    assert options.platform == "github"
    assert (options.owner, options.repo, options.pr_num) == ("acme", "widgets", 42)
    assert options.comment_sender == "bob"
    assert options.trigger_comment == "/lgtm"
    assert options.token == "test-token"
    assert options.debug is False
    assert kwargs["metrics"] is client.app.state.metrics


def test_bad_signature_is_rejected(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _github_payload(), secret="wrong")

    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "INVALID_SIGNATURE"
    assert dispatcher.calls == []


def test_missing_signature_is_rejected(client: TestClient) -> None:
    resp = client.post("/webhook", json=_github_payload(), headers={"X-GitHub-Event": "issue_comment"})

    assert resp.status_code == 401


def test_gitlab_note_is_dispatched(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = client.post(
        "/webhook",
        json=_gitlab_payload(),
        headers={"X-Gitlab-Event": "Note Hook", "X-Gitlab-Token": WEBHOOK_SECRET},
    )

    assert resp.status_code == 200
    options = dispatcher.calls[0][0]
    assert options.platform == "gitlab"
    assert (options.owner, options.repo, options.pr_num) == ("other", "tools", 7)
    assert options.comment_sender == "carol"


def test_gitlab_bad_token_is_rejected(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = client.post(
        "/webhook",
        json=_gitlab_payload(),
        headers={"X-Gitlab-Event": "Note Hook", "X-Gitlab-Token": "nope"},
    )

    assert resp.status_code == 401
    assert resp.json()["detail"]["code"] == "INVALID_TOKEN"
    assert dispatcher.calls == []


def test_repository_outside_allow_list_is_forbidden(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _github_payload(full_name="evil/repo"))

    assert resp.status_code == 403
    assert resp.json()["detail"] == {"code": "REPOSITORY_NOT_ALLOWED", "repository": "evil/repo"}
    assert dispatcher.calls == []


def test_plain_comment_is_ignored(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _github_payload(body="thanks, looks good"))

    assert resp.json() == {"status": "ignored", "reason": "comment is not a command"}
    assert dispatcher.calls == []


def test_unsupported_event_is_ignored(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, {"zen": "Keep it logically awesome."}, event="ping")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ignored", "reason": "unsupported event"}
    assert dispatcher.calls == []


def test_issue_comment_outside_pull_request_is_ignored(client: TestClient) -> None:
    payload = _github_payload()
    del payload["issue"]["pull_request"]

    resp = _post_github(client, payload)

    assert resp.json()["status"] == "ignored"


def test_malformed_payload_is_bad_request(client: TestClient) -> None:
    resp = _post_github(client, {"action": "created", "issue": {"number": 1, "pull_request": {}}})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_PAYLOAD"


def test_invalid_json_is_bad_request(client: TestClient) -> None:
    resp = client.post(
        "/webhook",
        content=b"{not json",
        headers={"X-Gitlab-Event": "Note Hook", "X-Gitlab-Token": WEBHOOK_SECRET},
    )

    assert resp.status_code == 400


def test_missing_event_header_is_bad_request(client: TestClient) -> None:
    resp = client.post("/webhook", json=_github_payload())

    assert resp.status_code == 400
    assert "X-GitHub-Event" in resp.json()["detail"]["message"]


def _merged_payload(*, merged: bool = True, action: str = "closed") -> dict[str, Any]:
    return {
        "action": action,
        "pull_request": {"number": 42, "merged": merged},
        "repository": {"full_name": "acme/widgets"},
        "sender": {"login": "alice"},
    }


def test_merged_pull_request_runs_post_merge_cherry_pick(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _merged_payload(), event="pull_request")

    assert resp.status_code == 200
    assert resp.json()["status"] == "processed"
    (options, profile, _) = dispatcher.calls[0]
    assert isinstance(profile, WebhookProfile)
    assert options.trigger_comment == "/__post-merge-cherry-pick"
    assert (options.owner, options.repo, options.pr_num) == ("acme", "widgets", 42)
    assert options.comment_sender == "alice"


def test_closed_without_merge_is_ignored(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _merged_payload(merged=False), event="pull_request")

    assert resp.json() == {"status": "ignored", "reason": "unsupported event"}
    assert dispatcher.calls == []


def test_other_pull_request_actions_are_ignored(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    resp = _post_github(client, _merged_payload(action="opened"), event="pull_request")

    assert resp.json()["status"] == "ignored"
    assert dispatcher.calls == []


def test_gitlab_merge_runs_post_merge_cherry_pick(client: TestClient, dispatcher: RecordingDispatcher) -> None:
    payload = {
        "object_kind": "merge_request",
        "user": {"username": "carol"},
        "project": {"path_with_namespace": "other/tools"},
        "object_attributes": {"iid": 7, "action": "merge"},
    }

    resp = client.post(
        "/webhook",
        json=payload,
        headers={"X-Gitlab-Event": "Merge Request Hook", "X-Gitlab-Token": WEBHOOK_SECRET},
    )

    assert resp.status_code == 200
    options = dispatcher.calls[0][0]
    assert options.trigger_comment == "/__post-merge-cherry-pick"
    assert (options.platform, options.pr_num) == ("gitlab", 7)


def test_post_merge_cherry_pick_can_be_disabled(webhook_settings: Settings, dispatcher: RecordingDispatcher) -> None:
    settings = webhook_settings.model_copy(update={"post_merge_cherry_pick": False})
    with TestClient(create_application(settings, dispatcher=dispatcher)) as client:
        resp = _post_github(client, _merged_payload(), event="pull_request")

    assert resp.json() == {"status": "ignored", "reason": "post-merge cherry-pick is disabled"}
    assert dispatcher.calls == []


def test_metrics_endpoint_serves_prometheus_text(client: TestClient) -> None:
    _post_github(client, _github_payload())
    client.app.state.metrics.record_command("github", "lgtm", "success")

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "pr_cli_command_execution_total" in resp.text
    assert 'event_type="issue_comment"' in resp.text
    sample = client.app.state.metrics.registry.get_sample_value(
        "pr_cli_webhook_requests_total", {"platform": "github", "event_type": "issue_comment", "status": "success"}
    )
    assert sample == 1


def test_responses_carry_security_headers(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["X-XSS-Protection"] == "1; mode=block"


def test_requests_over_the_rate_limit_are_rejected(webhook_settings: Settings) -> None:
    settings = webhook_settings.model_copy(update={"rate_limit_requests": 2})
    with TestClient(create_application(settings, dispatcher=RecordingDispatcher())) as client:
        statuses = [client.get("/health").status_code for _ in range(3)]
        other_client = client.get("/health", headers={"X-Forwarded-For": "203.0.113.9"})

    assert statuses == [200, 200, 429]
    assert other_client.status_code == 200


def test_dispatch_crash_becomes_internal_error(webhook_settings: Settings) -> None:
    def crashing(*_args: Any, **_kwargs: Any) -> ExecutionResult:
        raise RuntimeError("boom")

    with TestClient(create_application(webhook_settings, dispatcher=crashing)) as client:
        resp = _post_github(client, _github_payload())

    assert resp.status_code == 500
    assert resp.json() == {"detail": {"code": "INTERNAL_ERROR"}}
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_ready_in_sync_mode(client: TestClient) -> None:
    resp = client.get("/ready")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ready", "mode": "sync"}


class BlockingDispatcher(RecordingDispatcher):
    """Holds every dispatch until released, so queued jobs stay queued."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, options: RunOptions, profile: Any, **kwargs: Any) -> ExecutionResult:
        self.started.set()
        self.release.wait(timeout=10)
        return super().__call__(options, profile, **kwargs)


def test_async_mode_queues_and_processes_in_background(webhook_settings: Settings) -> None:
    settings = webhook_settings.model_copy(update={"async_processing": True, "worker_count": 2})
    dispatcher = RecordingDispatcher()
    with TestClient(create_application(settings, dispatcher=dispatcher)) as client:
        resp = client.post(
            "/webhook",
            json=_gitlab_payload(),
            headers={
                "X-Gitlab-Event": "Note Hook",
                "X-Gitlab-Token": WEBHOOK_SECRET,
                "X-Gitlab-Event-UUID": "evt-1",
            },
        )
        client.app.state.webhook_pool.join()

    assert resp.status_code == 200
    assert resp.json() == {"status": "queued", "event_id": "evt-1"}
    options = dispatcher.calls[0][0]
    assert (options.platform, options.pr_num, options.trigger_comment) == ("gitlab", 7, "/rebase")


def test_full_queue_rejects_with_503_and_fails_readiness(webhook_settings: Settings) -> None:
    settings = webhook_settings.model_copy(update={"async_processing": True, "worker_count": 1, "queue_size": 1})
    dispatcher = BlockingDispatcher()
    try:
        with TestClient(create_application(settings, dispatcher=dispatcher)) as client:
            running = _post_github(client, _github_payload(body="/label bug"))
            assert dispatcher.started.wait(timeout=5)
            waiting = _post_github(client, _github_payload(body="/label ui"))
            rejected = _post_github(client, _github_payload(body="/label docs"))
            readiness = client.get("/ready")
            dispatcher.release.set()
    finally:
        dispatcher.release.set()

    assert running.json()["status"] == "queued"
    assert waiting.json()["status"] == "queued"
    assert rejected.status_code == 503
    assert rejected.json()["detail"]["code"] == "QUEUE_FULL"
    assert readiness.status_code == 503
    assert [call[0].trigger_comment for call in dispatcher.calls] == ["/label bug", "/label ui"]
