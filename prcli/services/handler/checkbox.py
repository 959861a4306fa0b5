from __future__ import annotations

UNCHECKED = "[ ]"
CHECKED = "[x]"


def has_unchecked_checkbox(body: str) -> bool:
    return UNCHECKED in body


def toggle_unchecked_checkboxes(body: str) -> tuple[str, int]:
    """Tick every ``[ ]`` in a markdown body; returns the new body and how many were ticked."""
    count = body.count(UNCHECKED)
    if count == 0:
        return body, 0
    return body.replace(UNCHECKED, CHECKED), count
