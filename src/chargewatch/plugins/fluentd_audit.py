"""Plugin for structured audit logging of derived state to Fluentd."""

import asyncio
from typing import Any

from fluent import sender

from .base import PluginContext, PollerHook, PollerPlugin


class FluentdAuditPlugin(PollerPlugin):
    """
    Sends derived snapshots and poll failures to Fluentd.

    A snapshot event is emitted for the first poll of a device and afterwards
    only when the derived state changes, so a steady device does not flood the
    audit log at the poll rate.

    Example log entry:
    {
        "type": "snapshot",
        "device": "CP001",
        "consumer": "default",
        "snapshot": {
            "device_id": "CP001",
            "online": true,
            "status": "Charging",
            "connectors": [...]
        }
    }
    """

    def __init__(
        self,
        tag_prefix: str = "chargewatch",
        host: str = "localhost",
        port: int = 24224,
        timeout: float = 3.0,
        buffer_overflow_handler: Any = None,
        nanosecond_precision: bool = False,
    ):
        """
        Initialize the Fluentd audit plugin.

        Args:
            tag_prefix: Prefix for Fluentd tags (default: "chargewatch")
                       Tags will be: chargewatch.snapshot, chargewatch.poll.error
            host: Fluentd server hostname (default: "localhost")
            port: Fluentd server port (default: 24224)
            timeout: Connection timeout in seconds (default: 3.0)
            buffer_overflow_handler: Handler for buffer overflow (default: None)
            nanosecond_precision: Use nanosecond precision timestamps (default: False)
        """
        super().__init__()
        self.tag_prefix = tag_prefix
        self.host = host
        self.port = port
        self.timeout = timeout
        self.buffer_overflow_handler = buffer_overflow_handler
        self.nanosecond_precision = nanosecond_precision
        self.sender = None
        self._last_state: dict[str, dict] = {}

    def hooks(self) -> dict[PollerHook, str]:
        """Register hooks for snapshots and failures."""
        return {
            PollerHook.AFTER_POLL: "log_snapshot",
            PollerHook.POLL_FAILED: "log_poll_failure",
        }

    async def initialize(self, poller):
        """Initialize Fluentd sender when the poller starts."""
        try:
            self.sender = sender.FluentSender(
                self.tag_prefix,
                host=self.host,
                port=self.port,
                timeout=self.timeout,
                buffer_overflow_handler=self.buffer_overflow_handler,
                nanosecond_precision=self.nanosecond_precision,
            )
        except Exception as e:
            self.logger.error(f"Failed to initialize Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def cleanup(self, poller):
        """Close Fluentd sender when the poller is closed."""
        if self.sender:
            try:
                await asyncio.to_thread(self.sender.close)
            except Exception as e:
                self.logger.error(f"Error closing Fluentd sender: {e}", exc_info=True)
            self.sender = None

    async def _send_event(self, tag: str, data: dict):
        """
        Send an event to Fluentd without blocking the event loop.

        Args:
            tag: Event tag (e.g., "snapshot", "poll.error")
            data: Event data dictionary
        """
        if not self.sender:
            return

        try:
            await asyncio.to_thread(self.sender.emit, tag, data)
        except Exception as e:
            self.logger.error(f"Failed to send event to Fluentd (tag={tag}): {e}")

    def _base_event_data(self, context: PluginContext, event_type: str) -> dict:
        return {
            "type": event_type,
            "device": context.device_id,
            "consumer": context.poller.consumer_id,
        }

    @staticmethod
    def _state_of(snapshot_dict: dict) -> dict:
        """The parts of a snapshot that matter for change detection."""
        return {key: value for key, value in snapshot_dict.items() if key != "evaluated_at"}

    async def log_snapshot(self, context: PluginContext):
        """Log the snapshot if the device's derived state changed."""
        snapshot_dict = context.snapshot.to_dict()
        state = self._state_of(snapshot_dict)
        if self._last_state.get(context.device_id) == state:
            return
        self._last_state[context.device_id] = state

        data = self._base_event_data(context, "snapshot")
        data["snapshot"] = snapshot_dict
        await self._send_event("snapshot", data)

    async def log_poll_failure(self, context: PluginContext):
        """Log a failed poll."""
        data = self._base_event_data(context, "poll_error")
        data["error_type"] = type(context.error).__name__ if context.error else "Unknown"
        data["error"] = str(context.error) if context.error else ""
        data["failures"] = context.poller.failure_count
        await self._send_event("poll.error", data)
