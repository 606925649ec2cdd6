"""Repository for the append-only frame log."""

import json
import logging
from dataclasses import replace
from datetime import datetime

from ..errors import MalformedFrame
from ..logging_utils import log_error
from ..models import Direction, Frame
from ..reconstruction.liveness import ensure_utc
from ..settings import DEFAULT_FRAME_LIMIT
from .base import BaseRepository

logger = logging.getLogger(__name__)


def _parse_json(value, column: str, frame_id: int | None):
    if value is None or value == "":
        return None
    if not isinstance(value, (str, bytes)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError) as e:
        raise MalformedFrame(f"Unparseable {column}: {e}", frame_id=frame_id) from e


def _parse_timestamp(value, column: str, frame_id: int | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(datetime.fromisoformat(str(value)))
    except ValueError as e:
        raise MalformedFrame(f"Invalid {column} {value!r}", frame_id=frame_id) from e


def _parse_connector_id(value, frame_id: int | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        connector_id = int(value)
    except (TypeError, ValueError) as e:
        raise MalformedFrame(f"Invalid connector_id {value!r}", frame_id=frame_id) from e
    if connector_id < 0:
        raise MalformedFrame(f"Negative connector_id {connector_id}", frame_id=frame_id)
    return connector_id


class FrameRepository(BaseRepository):
    """Read and append access to the per-device frame log."""

    async def get_for_device(
        self, device_id: str, limit: int = DEFAULT_FRAME_LIMIT
    ) -> list[Frame]:
        """
        Get the most recently stored frames of a device.

        Callers must not rely on the order of the result. Rows that cannot be
        parsed are skipped and logged; they never fail the whole query.
        """
        rows = await self._fetchall(
            """
            SELECT * FROM frame
            WHERE device_id = ?
            ORDER BY id DESC
            LIMIT ?
            """,
            (device_id, limit),
        )

        frames = []
        for row in rows:
            try:
                frames.append(self._row_to_model(row))
            except MalformedFrame as e:
                log_error(
                    logger,
                    "malformed_frame",
                    f"Skipping malformed frame {e.frame_id}: {e}",
                    device_id=device_id,
                    frame_id=e.frame_id,
                )
        return frames

    async def append(self, frame: Frame) -> Frame:
        """Append a frame to the log and return it with its store-assigned id."""
        query = """
            INSERT INTO frame (
                device_id, connector_id, direction, message, message_id,
                message_data, raw, timestamp, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
            RETURNING id, created_at
        """
        cursor = await self._execute(
            query,
            (
                frame.device_id,
                frame.connector_id,
                Direction(frame.direction).value,
                frame.message,
                frame.message_id,
                json.dumps(frame.message_data) if frame.message_data is not None else None,
                json.dumps(frame.raw) if frame.raw is not None else None,
                frame.timestamp.isoformat() if frame.timestamp else None,
                frame.created_at.isoformat() if frame.created_at else None,
            ),
        )
        row = await cursor.fetchone()
        await self._commit()

        if row is None:
            return frame
        return replace(
            frame,
            id=row["id"],
            created_at=_parse_timestamp(row["created_at"], "created_at", row["id"]),
        )

    async def count_for_device(self, device_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS total FROM frame WHERE device_id = ?", (device_id,)
        )
        return row["total"] if row else 0

    def _row_to_model(self, row) -> Frame:
        """Convert database row to Frame model."""
        frame_id = row["id"]

        try:
            direction = Direction(row["direction"])
        except ValueError as e:
            raise MalformedFrame(f"Unknown direction {row['direction']!r}", frame_id) from e

        message_data = _parse_json(row["message_data"], "message_data", frame_id)
        if message_data is not None and not isinstance(message_data, dict):
            raise MalformedFrame("message_data is not an object", frame_id=frame_id)

        timestamp = _parse_timestamp(row["timestamp"], "timestamp", frame_id)
        created_at = _parse_timestamp(row["created_at"], "created_at", frame_id)
        if timestamp is None and created_at is None:
            raise MalformedFrame("Frame has neither timestamp nor created_at", frame_id)

        return Frame(
            id=frame_id,
            device_id=row["device_id"],
            connector_id=_parse_connector_id(row["connector_id"], frame_id),
            direction=direction,
            message=row["message"] or "",
            message_id=row["message_id"],
            message_data=message_data,
            raw=_parse_json(row["raw"], "raw", frame_id),
            timestamp=timestamp,
            created_at=created_at,
        )
