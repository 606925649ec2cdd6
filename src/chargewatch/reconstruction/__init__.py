"""Pure derivation of live charge-point state from the frame log."""

from .correlator import (
    Correlation,
    CorrelationOutcome,
    correlate_transaction,
    find_active_transaction,
    sort_frames,
)
from .liveness import is_online, latest_activity
from .snapshot import build_device_snapshot

__all__ = [
    "Correlation",
    "CorrelationOutcome",
    "build_device_snapshot",
    "correlate_transaction",
    "find_active_transaction",
    "is_online",
    "latest_activity",
    "sort_frames",
]
