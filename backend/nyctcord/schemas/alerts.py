"""Pydantic schemas for decoded feed alerts and poll round results."""

import enum
from typing import TypedDict

from pydantic import BaseModel, ConfigDict, Field

# ==================== Feed Schemas ====================


class ActivePeriod(BaseModel):
    """Time window (POSIX seconds) during which an alert is in effect. 0 means unset."""

    model_config = ConfigDict(frozen=True)

    start: int = 0
    end: int = 0


class AlertEntity(BaseModel):
    """One alert record decoded from a feed."""

    model_config = ConfigDict(frozen=True)

    entity_id: str = ""
    effect: str = "UNKNOWN_EFFECT"
    header: str = ""
    body: str = ""
    active_periods: tuple[ActivePeriod, ...] = ()
    line_ids: tuple[str, ...] = ()  # Raw route ids as published by the feed

    def to_raw_alert(self) -> "RawAlert":
        """Project onto the fields that define a line's displayed state."""
        return RawAlert(
            source_alert_id=self.entity_id,
            effect=self.effect,
            header=self.header,
            body=self.body,
        )


class FeedResult(BaseModel):
    """Alerts successfully decoded from one feed."""

    model_config = ConfigDict(frozen=True)

    feed_url: str
    entities: tuple[AlertEntity, ...] = ()


# ==================== Resolution Schemas ====================


class RawAlert(BaseModel):
    """Content of the alert selected for a line within one poll round."""

    model_config = ConfigDict(frozen=True)

    source_alert_id: str = ""
    effect: str
    header: str = ""
    body: str = ""


class ResolvedAlerts(BaseModel):
    """Best alert per normalized line id for one poll round."""

    model_config = ConfigDict(frozen=True)

    by_line: dict[str, RawAlert] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_line)

    def line_ids(self) -> list[str]:
        """Line ids in a stable order for processing."""
        return sorted(self.by_line)


# ==================== Result Types ====================


class TransitionOutcome(str, enum.Enum):
    """Result of applying a resolved alert to one line."""

    CHANGED = "changed"
    UNCHANGED = "unchanged"


class PollRoundStats(TypedDict):
    """Statistics for one poll round."""

    feeds_attempted: int
    feeds_failed: int
    lines_resolved: int
    lines_changed: int
    lines_unchanged: int
    lines_failed: int
    aborted: bool
