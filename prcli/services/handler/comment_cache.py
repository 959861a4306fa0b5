from __future__ import annotations

from threading import Lock
from typing import Callable

from prcli.models.platform import Comment


class CommentCache:
    """PR comments fetched at most once per dispatch, then shared read-only."""

    def __init__(self, loader: Callable[[], list[Comment]]) -> None:
        self._loader = loader
        self._lock = Lock()
        self._comments: tuple[Comment, ...] | None = None

    @property
    def loaded(self) -> bool:
        return self._comments is not None

    def get(self) -> list[Comment]:
        with self._lock:
            if self._comments is None:
                self._comments = tuple(self._loader())
        return list(self._comments)
