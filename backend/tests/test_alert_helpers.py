"""Tests for alert filtering and ranking helpers."""

import pytest
from nyctcord.helpers.alert_helpers import (
    DEFAULT_STATUS_LABEL,
    empty_to_none,
    is_alert_active,
    normalize_line_id,
    severity_rank,
    status_from_effect,
)
from nyctcord.schemas.alerts import ActivePeriod, AlertEntity


def _alert(*periods: tuple[int, int]) -> AlertEntity:
    return AlertEntity(
        entity_id="a1",
        effect="NO_SERVICE",
        active_periods=tuple(ActivePeriod(start=start, end=end) for start, end in periods),
        line_ids=("N",),
    )


class TestIsAlertActive:
    """Tests for is_alert_active."""

    def test_alert_without_periods_is_always_active(self) -> None:
        """An alert with no active periods is in effect at any time."""
        assert is_alert_active(_alert(), 0) is True
        assert is_alert_active(_alert(), 2_000_000_000) is True

    def test_closed_window_includes_both_ends(self) -> None:
        """Start and end are inclusive."""
        alert = _alert((100, 200))
        assert is_alert_active(alert, 100) is True
        assert is_alert_active(alert, 150) is True
        assert is_alert_active(alert, 200) is True

    def test_closed_window_excludes_outside(self) -> None:
        """Times before start or after end are inactive."""
        alert = _alert((100, 200))
        assert is_alert_active(alert, 99) is False
        assert is_alert_active(alert, 201) is False

    def test_zero_start_is_open_ended(self) -> None:
        """A start of 0 means the window has no lower bound."""
        alert = _alert((0, 200))
        assert is_alert_active(alert, 1) is True
        assert is_alert_active(alert, 201) is False

    def test_zero_end_is_open_ended(self) -> None:
        """An end of 0 means the window has no upper bound."""
        alert = _alert((100, 0))
        assert is_alert_active(alert, 99) is False
        assert is_alert_active(alert, 2_000_000_000) is True

    def test_any_matching_window_is_enough(self) -> None:
        """Alerts with several windows are active inside any of them."""
        alert = _alert((100, 200), (300, 400))
        assert is_alert_active(alert, 350) is True
        assert is_alert_active(alert, 250) is False


class TestNormalizeLineId:
    """Tests for normalize_line_id."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (" n ", "N"),
            ("N", "N"),
            ("6x", "6X"),
            ("\tgs\n", "GS"),
            ("   ", ""),
        ],
    )
    def test_trims_and_uppercases(self, raw: str, expected: str) -> None:
        """Whitespace is trimmed and letters are upper-cased."""
        assert normalize_line_id(raw) == expected


class TestSeverityAndStatus:
    """Tests for severity_rank and status_from_effect."""

    def test_ranks_are_strictly_ordered(self) -> None:
        """NO_SERVICE outranks everything down to MODIFIED_SERVICE."""
        ordered = ["NO_SERVICE", "REDUCED_SERVICE", "SIGNIFICANT_DELAYS", "DETOUR", "MODIFIED_SERVICE"]
        ranks = [severity_rank(effect) for effect in ordered]
        assert ranks == sorted(ranks, reverse=True)
        assert len(set(ranks)) == len(ranks)

    @pytest.mark.parametrize("effect", ["UNKNOWN_EFFECT", "OTHER_EFFECT", "STOP_MOVED", ""])
    def test_unlisted_effects_rank_zero(self, effect: str) -> None:
        """Effects outside the severity table rank lowest."""
        assert severity_rank(effect) == 0

    @pytest.mark.parametrize(
        ("effect", "status"),
        [
            ("NO_SERVICE", "No Service"),
            ("REDUCED_SERVICE", "Reduced Service"),
            ("SIGNIFICANT_DELAYS", "Delays"),
            ("DETOUR", "Service Change"),
            ("MODIFIED_SERVICE", "Service Change"),
        ],
    )
    def test_known_effects_map_to_labels(self, effect: str, status: str) -> None:
        """Known effects map to their display status."""
        assert status_from_effect(effect) == status

    def test_unknown_effect_maps_to_default_label(self) -> None:
        """Anything else displays as a generic alert."""
        assert status_from_effect("ACCESSIBILITY_ISSUE") == DEFAULT_STATUS_LABEL
        assert status_from_effect("") == "Alert"


class TestEmptyToNone:
    """Tests for empty_to_none."""

    def test_blank_values_become_none(self) -> None:
        """Empty and whitespace-only strings are stored as NULL."""
        assert empty_to_none("") is None
        assert empty_to_none("  ") is None
        assert empty_to_none(None) is None

    def test_text_is_kept_verbatim(self) -> None:
        """Non-blank text is not trimmed."""
        assert empty_to_none(" Delays ") == " Delays "
