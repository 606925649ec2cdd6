"""Base plugin infrastructure for SnapshotPoller."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..models import DeviceSnapshot

if TYPE_CHECKING:
    from ..poller import SnapshotPoller

logger = logging.getLogger(__name__)


class PollerHook(str, Enum):
    """
    Available plugin hooks in the poll cycle.

    - BEFORE_POLL: Called before the snapshot is fetched
    - AFTER_POLL: Called after a snapshot was fetched and delivered
    - POLL_FAILED: Called when fetching the snapshot raised
    """

    BEFORE_POLL = "before_poll"
    AFTER_POLL = "after_poll"
    POLL_FAILED = "poll_failed"


@dataclass
class PluginContext:
    """
    Context provided to plugin hooks.

    Contains:
    - poller: Reference to the SnapshotPoller instance
    - device_id: The device being polled
    - snapshot: The fetched snapshot (only in AFTER_POLL)
    - previous: The last-known-good snapshot before this poll
    - error: The exception raised by the fetch (only in POLL_FAILED)
    - duration: Seconds spent fetching (AFTER_POLL and POLL_FAILED)
    """

    poller: "SnapshotPoller"
    device_id: str
    snapshot: Optional[DeviceSnapshot] = None
    previous: Optional[DeviceSnapshot] = None
    error: Optional[BaseException] = None
    duration: Optional[float] = None


class PollerPlugin(ABC):
    """
    Base class for SnapshotPoller plugins.

    Plugins can register hooks to observe every poll cycle. A failing plugin is
    logged and never interrupts polling.

    To create a plugin:
    1. Subclass PollerPlugin
    2. Implement the `hooks()` method to register your hook handlers
    3. Implement async methods for each hook you want to handle

    Example:
        class MyPlugin(PollerPlugin):
            def hooks(self) -> dict[PollerHook, str]:
                return {PollerHook.AFTER_POLL: "on_snapshot"}

            async def on_snapshot(self, context: PluginContext):
                logger.info(f"{context.device_id} is {context.snapshot.display_status}")
    """

    def __init__(self):
        """Initialize the plugin."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def hooks(self) -> dict[PollerHook, str]:
        """
        Return a mapping of hooks to handler method names.

        Returns:
            Dictionary mapping PollerHook enum values to method names on this class.
        """

    async def initialize(self, poller: "SnapshotPoller"):
        """
        Called when the poller starts polling a device.

        Args:
            poller: The poller this plugin is attached to
        """
        _ = poller

    async def cleanup(self, poller: "SnapshotPoller"):
        """
        Called when the poller is closed.

        Args:
            poller: The poller this plugin is attached to
        """
        _ = poller
