from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi.testclient import TestClient

from prcli.core.config import Settings
from prcli.main import create_application
from prcli.models.options import RunOptions
from prcli.models.results import ExecutionResult

WEBHOOK_SECRET = "s3cret"


@dataclass
class RecordingDispatcher:
    result: ExecutionResult = field(default_factory=lambda: ExecutionResult.ok("SINGLE"))
    calls: list[tuple[RunOptions, Any, dict[str, Any]]] = field(default_factory=list)

    def __call__(self, options: RunOptions, profile: Any, **kwargs: Any) -> ExecutionResult:
        self.calls.append((options, profile, kwargs))
        return self.result


@pytest.fixture()
def webhook_settings() -> Settings:
    return Settings(
        _env_file=None,
        token="test-token",
        webhook_secret=WEBHOOK_SECRET,
        allowed_repos=["acme/*", "other/tools"],
        async_processing=False,
    )


@pytest.fixture()
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture()
def client(webhook_settings: Settings, dispatcher: RecordingDispatcher) -> TestClient:
    app = create_application(webhook_settings, dispatcher=dispatcher)
    with TestClient(app) as test_client:
        yield test_client
