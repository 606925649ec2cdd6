"""
Transaction correlation over a device's frame log.

The log has no "current session" record. Whether a connector is charging is
derived in two stages from immutable frames:

1. StartTransaction <-> Response, paired by ``message_id``, gives the
   transaction its identity (the central system assigns the transactionId in
   its response).
2. transactionId <-> StopTransaction tells whether that transaction has ended.

Only the most recent StartTransaction of a connector is ever considered.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ocpp.v16.enums import Action

from ..models import ActiveTransaction, Frame
from ..settings import STALE_TRANSACTION_AFTER
from .extraction import resolve_connector_id, resolve_transaction_id
from .liveness import ensure_utc

logger = logging.getLogger(__name__)

RESPONSE_MESSAGE = "Response"


class CorrelationOutcome(str, Enum):
    """Why a connector does or does not have an active transaction."""

    ACTIVE = "active"
    NO_START = "no_start"
    STALE = "stale"
    UNRESOLVED = "unresolved"
    AMBIGUOUS = "ambiguous"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Correlation:
    """Result of correlating one connector's transaction frames."""

    outcome: CorrelationOutcome
    transaction: ActiveTransaction | None = None
    start_frame: Frame | None = None


def _sort_key(frame: Frame) -> tuple[datetime, int]:
    return ensure_utc(frame.effective_timestamp), frame.id or 0


def sort_frames(frames: Iterable[Frame]) -> list[Frame]:
    """
    Sort frames newest first by (effective timestamp, id).

    Frames without any timestamp cannot be placed in the log and are dropped.
    """
    timed = []
    untimed = 0
    for frame in frames:
        if frame.effective_timestamp is None:
            untimed += 1
            continue
        timed.append(frame)

    if untimed:
        logger.warning(f"Skipped {untimed} frame(s) without timestamp or created_at")

    timed.sort(key=_sort_key, reverse=True)
    return timed


def _is_start_for(frame: Frame, connector_id: int) -> bool:
    return (
        frame.message == Action.start_transaction
        and frame.is_incoming
        and resolve_connector_id(frame) == connector_id
    )


def _find_response(sorted_frames: list[Frame], request: Frame) -> Frame | None:
    if request.message_id is None:
        return None
    for frame in sorted_frames:
        if (
            frame.message == RESPONSE_MESSAGE
            and frame.is_outgoing
            and frame.message_id == request.message_id
        ):
            return frame
    return None


def _resolve_start_transaction_id(sorted_frames: list[Frame], start: Frame) -> Any:
    """Transaction id from the paired Response, else from the StartTransaction itself."""
    response = _find_response(sorted_frames, start)
    if response is not None:
        transaction_id = resolve_transaction_id(response)
        if transaction_id is not None:
            return transaction_id
    return resolve_transaction_id(start)


def _transaction_key(transaction_id: Any) -> str:
    """Comparable form of a transactionId: 42, 42.0 and "42" are the same id."""
    if isinstance(transaction_id, float) and transaction_id.is_integer():
        transaction_id = int(transaction_id)
    return str(transaction_id)


def _is_stopped(sorted_frames: list[Frame], transaction_id: Any) -> bool:
    wanted = _transaction_key(transaction_id)
    for frame in sorted_frames:
        if frame.message != Action.stop_transaction or not frame.is_incoming:
            continue
        stopped_id = resolve_transaction_id(frame)
        if stopped_id is not None and _transaction_key(stopped_id) == wanted:
            return True
    return False


def correlate_sorted(
    sorted_frames: list[Frame],
    connector_id: int,
    now: datetime,
    stale_after: timedelta = STALE_TRANSACTION_AFTER,
) -> Correlation:
    """Correlate frames already ordered by ``sort_frames``."""
    starts = [frame for frame in sorted_frames if _is_start_for(frame, connector_id)]
    if not starts:
        return Correlation(CorrelationOutcome.NO_START)

    latest_start = starts[0]
    start_time = ensure_utc(latest_start.effective_timestamp)

    if ensure_utc(now) - start_time > stale_after:
        logger.debug(
            f"StartTransaction {latest_start.message_id} on connector {connector_id} "
            f"is older than {stale_after}, treating as stale"
        )
        return Correlation(CorrelationOutcome.STALE, start_frame=latest_start)

    transaction_id = _resolve_start_transaction_id(sorted_frames, latest_start)
    if transaction_id is None:
        others_unresolved = any(
            _resolve_start_transaction_id(sorted_frames, start) is None for start in starts[1:]
        )
        if others_unresolved:
            logger.warning(
                f"Cannot distinguish StartTransaction frames on connector {connector_id} "
                f"of {latest_start.device_id}: none carries a transactionId",
                extra={
                    "event_type": "ambiguous_transaction",
                    "event_data": {
                        "device_id": latest_start.device_id,
                        "connector_id": connector_id,
                        "message_id": latest_start.message_id,
                    },
                },
            )
            return Correlation(CorrelationOutcome.AMBIGUOUS, start_frame=latest_start)
        return Correlation(CorrelationOutcome.UNRESOLVED, start_frame=latest_start)

    if _is_stopped(sorted_frames, transaction_id):
        return Correlation(CorrelationOutcome.STOPPED, start_frame=latest_start)

    return Correlation(
        CorrelationOutcome.ACTIVE,
        transaction=ActiveTransaction(
            transaction_id=transaction_id,
            connector_id=connector_id,
            start_time=start_time,
        ),
        start_frame=latest_start,
    )


def correlate_transaction(
    frames: Iterable[Frame],
    connector_id: int,
    now: datetime,
    stale_after: timedelta = STALE_TRANSACTION_AFTER,
) -> Correlation:
    """Correlate a device's frames for one connector, in any order."""
    return correlate_sorted(sort_frames(frames), connector_id, now, stale_after)


def find_active_transaction(
    frames: Iterable[Frame],
    connector_id: int,
    now: datetime,
    stale_after: timedelta = STALE_TRANSACTION_AFTER,
) -> ActiveTransaction | None:
    """Return the in-progress transaction on ``connector_id``, if any."""
    return correlate_transaction(frames, connector_id, now, stale_after).transaction
