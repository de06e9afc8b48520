"""Content fingerprinting and comparison against persisted line state."""

import hashlib
import json

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nyctcord.models.line import LineState
from nyctcord.schemas.alerts import RawAlert


def content_fingerprint(effect: str, header: str, body: str) -> str:
    """
    Compute a deterministic SHA-256 fingerprint of an alert's displayed content.

    Fields are serialized as an ordered JSON array, so field boundaries stay
    unambiguous even when header or body contain newlines or separators.

    Args:
        effect: Raw effect code
        header: Header text
        body: Description text

    Returns:
        SHA256 hex digest (64 characters)

    Example:
        >>> a = content_fingerprint("NO_SERVICE", "A", "B")
        >>> a == content_fingerprint("NO_SERVICE", "A", "B")
        True
        >>> a == content_fingerprint("NO_SERVICE", "A", "C")
        False
    """
    payload = json.dumps([effect, header, body], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def fingerprint_alert(alert: RawAlert) -> str:
    """Fingerprint a resolved alert."""
    return content_fingerprint(alert.effect, alert.header, alert.body)


def is_changed(stored_fingerprint: str | None, new_fingerprint: str) -> bool:
    """A line with no stored fingerprint is always considered changed."""
    return stored_fingerprint is None or stored_fingerprint != new_fingerprint


async def get_stored_fingerprint(db: AsyncSession, line_id: str) -> str | None:
    """
    Read the last accepted fingerprint for a line.

    Args:
        db: Database session
        line_id: Normalized line id

    Returns:
        Stored content hash, or None when the line has never been recorded
    """
    result = await db.execute(select(LineState.content_hash).where(LineState.line_id == line_id))
    return result.scalar_one_or_none()
