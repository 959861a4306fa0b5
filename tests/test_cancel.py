from __future__ import annotations

import pytest

from prcli.core.errors import DispatchCancelledError
from prcli.services.executor.cancel import NEVER_CANCELLED, CancelToken


def test_cancel_sets_flag() -> None:
    token = CancelToken()
    token.raise_if_cancelled()

    token.cancel()

    assert token.cancelled is True
    with pytest.raises(DispatchCancelledError, match="dispatch cancelled"):
        token.raise_if_cancelled()


def test_deadline_expires() -> None:
    token = CancelToken(timeout_seconds=0)

    assert token.expired is True
    assert token.remaining() == 0.0
    with pytest.raises(DispatchCancelledError, match="deadline exceeded"):
        token.raise_if_cancelled()


def test_default_token_never_expires() -> None:
    assert NEVER_CANCELLED.remaining() is None
    assert NEVER_CANCELLED.cancelled is False
