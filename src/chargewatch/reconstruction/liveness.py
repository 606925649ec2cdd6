"""Online/Offline evaluation from a device's last-seen timestamp."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from ..models import Frame
from ..settings import OFFLINE_THRESHOLD


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_online(
    last_seen: datetime | None,
    now: datetime,
    threshold: timedelta = OFFLINE_THRESHOLD,
) -> bool:
    """
    Return True if a device seen at ``last_seen`` is still reachable at ``now``.

    The boundary is inclusive: a gap of exactly ``threshold`` is Online.
    """
    if last_seen is None:
        return False
    return ensure_utc(now) - ensure_utc(last_seen) <= threshold


def latest_activity(frames: Iterable[Frame]) -> datetime | None:
    """Effective timestamp of the most recent frame, used when last_seen is unknown."""
    timestamps = [
        ensure_utc(frame.effective_timestamp)
        for frame in frames
        if frame.effective_timestamp is not None
    ]
    return max(timestamps, default=None)
