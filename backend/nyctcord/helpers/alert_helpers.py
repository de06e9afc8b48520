"""Pure helper functions for filtering and ranking feed alerts.

No side effects and no I/O, so each rule can be tested in isolation.
"""

from nyctcord.schemas.alerts import AlertEntity

# Higher rank = more severe. Effects not listed rank 0.
SEVERITY_RANKS: dict[str, int] = {
    "NO_SERVICE": 5,
    "REDUCED_SERVICE": 4,
    "SIGNIFICANT_DELAYS": 3,
    "DETOUR": 2,
    "MODIFIED_SERVICE": 1,
}

STATUS_LABELS: dict[str, str] = {
    "NO_SERVICE": "No Service",
    "REDUCED_SERVICE": "Reduced Service",
    "SIGNIFICANT_DELAYS": "Delays",
    "DETOUR": "Service Change",
    "MODIFIED_SERVICE": "Service Change",
}

DEFAULT_STATUS_LABEL = "Alert"


def normalize_line_id(raw_line_id: str) -> str:
    """
    Normalize a line identifier for use as a map or row key.

    Example:
        >>> normalize_line_id(" n ")
        'N'
    """
    return raw_line_id.strip().upper()


def is_alert_active(alert: AlertEntity, now: int) -> bool:
    """
    Check whether an alert is in effect at ``now`` (POSIX seconds).

    An alert without active periods is always active. Otherwise ``now`` must fall
    inside at least one window, inclusive at both ends; a start or end of 0 leaves
    that side of the window open.

    Example:
        >>> from nyctcord.schemas.alerts import ActivePeriod, AlertEntity
        >>> alert = AlertEntity(active_periods=(ActivePeriod(start=100, end=200),))
        >>> is_alert_active(alert, 150), is_alert_active(alert, 250)
        (True, False)
    """
    if not alert.active_periods:
        return True
    return any(
        (period.start == 0 or now >= period.start) and (period.end == 0 or now <= period.end)
        for period in alert.active_periods
    )


def severity_rank(effect: str) -> int:
    """Rank an effect code; unknown or unset effects rank lowest."""
    return SEVERITY_RANKS.get(effect, 0)


def status_from_effect(effect: str) -> str:
    """
    Map an effect code to its display status.

    Example:
        >>> status_from_effect("SIGNIFICANT_DELAYS")
        'Delays'
        >>> status_from_effect("UNKNOWN_EFFECT")
        'Alert'
    """
    return STATUS_LABELS.get(effect, DEFAULT_STATUS_LABEL)


def empty_to_none(value: str | None) -> str | None:
    """Blank strings are persisted as NULL."""
    if value is None or not value.strip():
        return None
    return value
