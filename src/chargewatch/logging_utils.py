"""Structured JSON logging utilities for event-based logging."""

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import DeviceSnapshot


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add event-specific fields if present
        if hasattr(record, "event_type"):
            log_data["event_type"] = record.event_type
        if hasattr(record, "event_data"):
            log_data.update(record.event_data)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _event_data(base: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    """Merge kwargs into base, dropping None values."""
    event_data = dict(base)
    for key, value in kwargs.items():
        if value is not None:
            event_data[key] = value
    return event_data


def log_snapshot_event(
    logger: logging.Logger,
    device_id: str,
    snapshot: "DeviceSnapshot",
    **kwargs: Any,
) -> None:
    """
    Log a derived device snapshot.

    Args:
        logger: Logger instance
        device_id: Charge point device ID
        snapshot: The snapshot that was derived
        **kwargs: Additional fields to include
    """
    event_data = _event_data(
        {
            "device_id": device_id,
            "online": snapshot.online,
            "status": snapshot.display_status,
            "connectors": {
                str(connector.connector_id): connector.status.value
                for connector in snapshot.connectors
            },
        },
        **kwargs,
    )

    extra = {
        "event_type": "snapshot",
        "event_data": event_data,
    }
    logger.info(f"Snapshot {device_id}: {snapshot.display_status}", extra=extra)


def log_poller_event(
    logger: logging.Logger,
    event: str,
    device_id: str | None = None,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """
    Log a poller lifecycle event.

    Args:
        logger: Logger instance
        event: Event name (e.g., "start", "stop", "skip", "discard")
        device_id: Charge point device ID (if applicable)
        level: Log level for the event
        **kwargs: Additional fields to include
    """
    base = {"event": event}
    if device_id is not None:
        base["device_id"] = device_id

    extra = {
        "event_type": "poller_event",
        "event_data": _event_data(base, **kwargs),
    }
    logger.log(level, f"Poller {event}", extra=extra)


def log_error(
    logger: logging.Logger,
    error_type: str,
    message: str,
    device_id: str | None = None,
    exc_info: Exception | None = None,
    **kwargs: Any,
) -> None:
    """
    Log an error event.

    Args:
        logger: Logger instance
        error_type: Type of error (e.g., "store_unavailable", "plugin_error")
        message: Error message
        device_id: Charge point device ID (if applicable)
        exc_info: Exception object (will extract traceback)
        **kwargs: Additional fields to include
    """
    base = {"error_type": error_type}
    if device_id is not None:
        base["device_id"] = device_id

    extra = {
        "event_type": "error",
        "event_data": _event_data(base, **kwargs),
    }
    logger.error(message, extra=extra, exc_info=exc_info)
