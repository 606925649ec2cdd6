"""Tunable thresholds for live-state reconstruction and polling."""

from dataclasses import dataclass
from datetime import timedelta

# A device that has not been seen for longer than this is Offline.
OFFLINE_THRESHOLD = timedelta(minutes=5)

# StartTransaction frames older than this are treated as hung sessions.
STALE_TRANSACTION_AFTER = timedelta(hours=2)

# Enough history to pair old StartTransaction frames with their Stop frames.
DEFAULT_FRAME_LIMIT = 2000

DEFAULT_POLL_INTERVAL = 5.0


@dataclass(frozen=True)
class ReconstructionSettings:
    """Settings shared by the snapshot builder, the service and the poller."""

    offline_threshold: timedelta = OFFLINE_THRESHOLD
    stale_transaction_after: timedelta = STALE_TRANSACTION_AFTER
    frame_limit: int = DEFAULT_FRAME_LIMIT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    def __post_init__(self):
        if self.frame_limit < 1:
            raise ValueError(f"frame_limit must be positive, got {self.frame_limit}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
