"""Unit tests for the shared protect-once field policy."""
from types import SimpleNamespace

import pytest

from app.services.sync.utils.field_policy import (
    apply_if_not_none,
    apply_protected,
    is_blank,
    protect_once,
)


class TestIsBlank:

    @pytest.mark.parametrize("value", [None, "", " ", "0", 0, 0.0, [], {}])
    def test_blank_values(self, value):
        """Should treat empty and zero values as not filled in."""
        assert is_blank(value)

    @pytest.mark.parametrize("value", ["78", 12, False, True, ["win"], {"t": "1"}])
    def test_filled_values(self, value):
        """Should treat real values, including False, as filled in."""
        assert not is_blank(value)


class TestProtectOnce:

    def test_create_always_writes(self):
        """Should write the candidate on create even over a value."""
        assert protect_once("old", "new", is_update=False) == (True, "new")

    def test_update_fills_blank(self):
        """Should fill a blank field on update."""
        assert protect_once("", "TVL", is_update=True) == (True, "TVL")

    def test_update_keeps_manual_value(self):
        """Should never overwrite a filled field on update."""
        assert protect_once("Manual", "TVL", is_update=True) == (False, "Manual")

    def test_missing_candidate_writes_nothing(self):
        """Should not write when upstream supplied nothing."""
        assert protect_once(None, None, is_update=False) == (False, None)


class TestApply:

    def test_apply_protected_sets_attribute(self):
        """Should set a blank attribute on the record."""
        record = SimpleNamespace(abbreviation=None)
        assert apply_protected(record, "abbreviation", "TVL", is_update=True)
        assert record.abbreviation == "TVL"

    def test_apply_protected_leaves_manual_attribute(self):
        """Should keep a hand-edited attribute."""
        record = SimpleNamespace(abbreviation="LAN")
        assert not apply_protected(record, "abbreviation", "TVL", is_update=True)
        assert record.abbreviation == "LAN"

    def test_apply_if_not_none_overwrites(self):
        """Should always write sync-owned fields when upstream has a value."""
        record = SimpleNamespace(matchday=3)
        assert apply_if_not_none(record, "matchday", 4)
        assert record.matchday == 4

    def test_apply_if_not_none_keeps_on_none(self):
        """Should keep sync-owned fields when upstream sent null."""
        record = SimpleNamespace(forfeit=True)
        assert not apply_if_not_none(record, "forfeit", None)
        assert record.forfeit is True
