from __future__ import annotations

from prcli.services.handler.checkbox import has_unchecked_checkbox, toggle_unchecked_checkboxes


def test_toggle_ticks_every_unchecked_box() -> None:
    body = "## Checklist\n- [ ] docs\n- [x] tests\n- [ ] changelog\n"

    updated, count = toggle_unchecked_checkboxes(body)

    assert count == 2
    assert updated == "## Checklist\n- [x] docs\n- [x] tests\n- [x] changelog\n"
    assert has_unchecked_checkbox(updated) is False


def test_toggle_without_boxes_is_noop() -> None:
    assert toggle_unchecked_checkboxes("- [x] done") == ("- [x] done", 0)
    assert has_unchecked_checkbox("") is False
