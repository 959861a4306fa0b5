from __future__ import annotations

import time
from threading import Event

from prcli.core.errors import DispatchCancelledError


class CancelToken:
    """Cancellation flag plus an optional deadline shared by everything one dispatch runs."""

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._event = Event()
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DispatchCancelledError()
        if self.expired:
            raise DispatchCancelledError("dispatch deadline exceeded")


NEVER_CANCELLED = CancelToken()
