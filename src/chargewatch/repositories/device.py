"""Repository for device metadata: last-seen time and connector definitions."""

from datetime import datetime

from ..models import ConnectorDef, DeviceMetadata
from ..reconstruction.liveness import ensure_utc
from .base import BaseRepository


class DeviceRepository(BaseRepository):
    """Handles database operations for devices and their connectors."""

    async def upsert_device(self, device: DeviceMetadata) -> DeviceMetadata | None:
        """Insert or update a device and its connector definitions."""
        query = """
            INSERT INTO device (id, name, last_seen, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                name = COALESCE(NULLIF(excluded.name, ''), name),
                last_seen = COALESCE(excluded.last_seen, last_seen),
                updated_at = CURRENT_TIMESTAMP
        """
        await self._execute(query, (device.device_id, device.name, device.last_seen))

        for connector in device.connectors:
            await self._upsert_connector(device.device_id, connector)

        await self._commit()
        return await self.get_metadata(device.device_id)

    async def set_connector(self, device_id: str, connector: ConnectorDef):
        """Insert or update a single connector definition."""
        await self._upsert_connector(device_id, connector)
        await self._commit()

    async def _upsert_connector(self, device_id: str, connector: ConnectorDef):
        query = """
            INSERT INTO connector (device_id, connector_id, connector_type, power)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(device_id, connector_id) DO UPDATE SET
                connector_type = excluded.connector_type,
                power = excluded.power
        """
        await self._execute(
            query,
            (device_id, connector.connector_id, connector.connector_type, connector.power),
        )

    async def touch_last_seen(self, device_id: str, seen_at: datetime):
        """Record that the device was heard from at ``seen_at``."""
        query = """
            UPDATE device
            SET last_seen = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """
        await self._execute_and_commit(query, (seen_at, device_id))

    async def get_metadata(self, device_id: str) -> DeviceMetadata | None:
        """Get a device with its connector definitions, ordered by connector id."""
        row = await self._fetchone("SELECT * FROM device WHERE id = ?", (device_id,))
        if not row:
            return None

        connector_rows = await self._fetchall(
            "SELECT * FROM connector WHERE device_id = ? ORDER BY connector_id",
            (device_id,),
        )
        return self._row_to_model(row, connector_rows)

    async def get_all_ids(self) -> list[str]:
        """Get the ids of all known devices."""
        rows = await self._fetchall("SELECT id FROM device ORDER BY id")
        return [row["id"] for row in rows]

    def _row_to_model(self, row, connector_rows) -> DeviceMetadata:
        """Convert database rows to a DeviceMetadata model."""
        last_seen = row["last_seen"]
        return DeviceMetadata(
            device_id=row["id"],
            name=row["name"],
            last_seen=ensure_utc(last_seen) if last_seen is not None else None,
            connectors=[
                ConnectorDef(
                    connector_id=connector_row["connector_id"],
                    connector_type=connector_row["connector_type"],
                    power=connector_row["power"],
                )
                for connector_row in connector_rows
            ],
        )
