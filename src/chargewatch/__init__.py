"""
Chargewatch - Charge-point live-state reconstruction from the OCPP frame log

Derives whether each charge point is online and which of its connectors carry
an in-progress transaction, using the append-only frame log as the only source
of truth.
"""

__version__ = "0.1.0"

from .database import Database
from .poller import PollerRegistry, SnapshotPoller
from .service import LiveStateService

__all__ = ["Database", "LiveStateService", "PollerRegistry", "SnapshotPoller"]
