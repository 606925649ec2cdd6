"""Live-state service: fetch a device's frames and metadata, then derive its snapshot."""

import logging
from datetime import UTC, datetime

import aiosqlite

from .errors import DeviceNotFound
from .models import DeviceSnapshot
from .reconstruction import build_device_snapshot, latest_activity
from .repositories import DeviceRepository, FrameRepository
from .settings import ReconstructionSettings

logger = logging.getLogger(__name__)


class LiveStateService:
    """
    Derives device snapshots from the frame log on every call.

    Nothing is cached or persisted here: each call reads the frame window and
    metadata afresh, so concurrent viewers never share mutable state.
    """

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        settings: ReconstructionSettings | None = None,
    ):
        self.settings = settings or ReconstructionSettings()
        self.frame_repo = FrameRepository(db_connection)
        self.device_repo = DeviceRepository(db_connection)

    async def get_snapshot(self, device_id: str, now: datetime | None = None) -> DeviceSnapshot:
        """
        Derive the current snapshot of a device.

        Raises:
            DeviceNotFound: no metadata exists for ``device_id``
            StoreUnavailable: the store could not be queried
        """
        metadata = await self.device_repo.get_metadata(device_id)
        if metadata is None:
            raise DeviceNotFound(device_id)

        frames = await self.frame_repo.get_for_device(device_id, limit=self.settings.frame_limit)

        # last_seen is maintained by heartbeats; fall back to the newest frame
        last_seen = metadata.last_seen
        if last_seen is None:
            last_seen = latest_activity(frames)

        snapshot = build_device_snapshot(
            device_id,
            frames,
            metadata.connectors,
            last_seen,
            now or datetime.now(UTC),
            offline_threshold=self.settings.offline_threshold,
            stale_after=self.settings.stale_transaction_after,
        )
        logger.debug(
            f"Derived snapshot for {device_id} from {len(frames)} frame(s): "
            f"{snapshot.display_status}"
        )
        return snapshot

    async def list_snapshots(self, now: datetime | None = None) -> list[DeviceSnapshot]:
        """Snapshots of all known devices, online devices first, otherwise by id."""
        now = now or datetime.now(UTC)
        snapshots = [
            await self.get_snapshot(device_id, now) for device_id in await self.device_repo.get_all_ids()
        ]
        snapshots.sort(key=lambda snapshot: not snapshot.online)
        return snapshots
