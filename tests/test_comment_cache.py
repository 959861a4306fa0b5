from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from prcli.models.platform import Comment
from prcli.services.handler.comment_cache import CommentCache


def test_comments_load_once_across_threads() -> None:
    loads: list[int] = []

    def loader() -> list[Comment]:
        loads.append(1)
        return [Comment(author="bob", body="/lgtm")]

    cache = CommentCache(loader)
    assert cache.loaded is False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: cache.get(), range(32)))

    assert len(loads) == 1
    assert cache.loaded is True
    assert all(result == [Comment(author="bob", body="/lgtm")] for result in results)


def test_callers_get_independent_lists() -> None:
    cache = CommentCache(lambda: [Comment(author="bob", body="/lgtm")])

    first = cache.get()
    first.clear()

    assert len(cache.get()) == 1
