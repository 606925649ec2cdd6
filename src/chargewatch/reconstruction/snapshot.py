"""Compose liveness and transaction correlation into a device snapshot."""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from ocpp.v16.enums import Action

from ..models import ConnectorDef, ConnectorSnapshot, ConnectorStatus, DeviceSnapshot, Frame
from ..settings import OFFLINE_THRESHOLD, STALE_TRANSACTION_AFTER
from .correlator import correlate_sorted, sort_frames
from .extraction import resolve_connector_id, resolve_error_code, resolve_status
from .liveness import ensure_utc, is_online

# Connector 0 addresses the charge point as a whole.
WHOLE_CHARGE_POINT = 0


def latest_fault(sorted_frames: Sequence[Frame], connector_id: int) -> str | None:
    """
    Return the error code if the connector is currently reported Faulted.

    The most recent StatusNotification addressed to the connector, or to the
    whole charge point, decides. Returns None when that notification is not
    Faulted or there is none. A Faulted notification without an error code
    yields an empty string.
    """
    for frame in sorted_frames:
        if frame.message != Action.status_notification or not frame.is_incoming:
            continue
        if resolve_connector_id(frame) not in (connector_id, WHOLE_CHARGE_POINT):
            continue
        if resolve_status(frame) != ConnectorStatus.FAULTED.value:
            return None
        return resolve_error_code(frame) or ""
    return None


def build_device_snapshot(
    device_id: str,
    frames: Iterable[Frame],
    connector_defs: Iterable[ConnectorDef],
    last_seen: datetime | None,
    now: datetime,
    offline_threshold: timedelta = OFFLINE_THRESHOLD,
    stale_after: timedelta = STALE_TRANSACTION_AFTER,
) -> DeviceSnapshot:
    """Build the snapshot of one device from its frame window."""
    online = is_online(last_seen, now, offline_threshold)
    sorted_frames = sort_frames(frames)

    connectors = []
    for connector_def in sorted(connector_defs, key=lambda c: c.connector_id):
        connector_id = connector_def.connector_id
        correlation = correlate_sorted(sorted_frames, connector_id, now, stale_after)
        error_code = None

        if correlation.transaction is not None:
            status = ConnectorStatus.CHARGING
        else:
            error_code = latest_fault(sorted_frames, connector_id)
            if error_code is not None:
                status = ConnectorStatus.FAULTED
            elif online:
                status = ConnectorStatus.AVAILABLE
            else:
                status = ConnectorStatus.UNAVAILABLE

        connectors.append(
            ConnectorSnapshot(
                connector_id=connector_id,
                status=status,
                active_transaction=correlation.transaction,
                connector_type=connector_def.connector_type,
                power=connector_def.power,
                error_code=error_code,
                outcome=correlation.outcome.value,
            )
        )

    return DeviceSnapshot(
        device_id=device_id,
        online=online,
        connectors=tuple(connectors),
        last_seen=ensure_utc(last_seen) if last_seen is not None else None,
        evaluated_at=ensure_utc(now),
    )
