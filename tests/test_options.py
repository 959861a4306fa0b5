from __future__ import annotations

import pytest

from prcli.core.config import Settings
from prcli.core.errors import ConfigError
from prcli.models.options import RunOptions


def test_overrides_replace_settings_but_none_does_not() -> None:
    settings = Settings(_env_file=None, token="from-env", owner="acme", lgtm_threshold=2)

    options = RunOptions.from_settings(settings, owner="other", token=None, repo="widgets")

    assert options.token == "from-env"
    assert options.owner == "other"
    assert options.repo == "widgets"
    assert options.lgtm_threshold == 2


def test_tokens_are_hidden_from_repr() -> None:
    options = RunOptions(token="ghp_secret", comment_token="ghp_other")

    assert "ghp_" not in repr(options)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"token": ""}, "token is required"),
        ({"pr_num": 0}, "pr_num is required"),
        ({"trigger_comment": ""}, "trigger_comment is required"),
        ({"platform": "bitbucket"}, "unsupported platform: bitbucket"),
    ],
)
def test_ensure_complete(overrides: dict[str, object], message: str) -> None:
    data: dict[str, object] = {
        "token": "tok",
        "owner": "acme",
        "repo": "widgets",
        "pr_num": 42,
        "comment_sender": "bob",
        "trigger_comment": "/lgtm",
    }
    data.update(overrides)

    with pytest.raises(ConfigError, match=message):
        RunOptions(**data).ensure_complete()
