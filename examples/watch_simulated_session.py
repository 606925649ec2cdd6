"""
Example: watch a simulated charging session through the poller.

This seeds a scratch database with a two-connector device, then appends the
frames a real charge point would produce during a short session:

1. StartTransaction on connector 1 and the central system's Response
2. A Faulted StatusNotification on connector 2
3. StopTransaction for the session

A PollerRegistry watches the device with the ConnectorTransitionPlugin
enabled, so each derived status change is printed as it happens.
"""

import asyncio
import logging
import tempfile
import uuid
from dataclasses import asdict
from datetime import UTC, datetime
from pathlib import Path

from ocpp.charge_point import remove_nones, snake_to_camel_case
from ocpp.messages import MessageType
from ocpp.v16 import call, call_result
from ocpp.v16.enums import Action, AuthorizationStatus, ChargePointErrorCode, ChargePointStatus

from chargewatch.database import Database
from chargewatch.models import ConnectorDef, DeviceMetadata, Direction, Frame
from chargewatch.plugins import ConnectorTransitionPlugin
from chargewatch.poller import PollerRegistry
from chargewatch.service import LiveStateService

DEVICE_ID = "SIM001"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def payload_of(message) -> dict:
    """Convert an ocpp payload dataclass to its camelCase wire form."""
    return snake_to_camel_case(remove_nones(asdict(message)))


def incoming(action: str, message, connector_id: int | None = None) -> Frame:
    message_id = str(uuid.uuid4())
    payload = payload_of(message)
    return Frame(
        device_id=DEVICE_ID,
        direction=Direction.INCOMING,
        message=action,
        connector_id=connector_id,
        message_id=message_id,
        message_data=payload,
        raw=[MessageType.Call, message_id, action, payload],
        timestamp=datetime.now(UTC),
    )


def response(request: Frame, message) -> Frame:
    payload = payload_of(message)
    return Frame(
        device_id=DEVICE_ID,
        direction=Direction.OUTGOING,
        message="Response",
        message_id=request.message_id,
        message_data=payload,
        raw=[MessageType.CallResult, request.message_id, payload],
        timestamp=datetime.now(UTC),
    )


def print_snapshot(snapshot):
    connectors = ", ".join(
        f"#{c.connector_id}={c.status.value}" for c in snapshot.connectors
    )
    print(f"{snapshot.device_id}: {snapshot.display_status} ({connectors})")


async def main():
    """Seed the database, start watching, and play the session."""
    db_path = Path(tempfile.mkdtemp()) / "simulation.db"
    db = Database(str(db_path))
    await db.initialize_schema()
    service = LiveStateService(await db.connect())

    await service.device_repo.upsert_device(
        DeviceMetadata(
            device_id=DEVICE_ID,
            name="Simulated charger",
            last_seen=datetime.now(UTC),
            connectors=[
                ConnectorDef(connector_id=1, connector_type="Type2", power=22.0),
                ConnectorDef(connector_id=2, connector_type="CCS2", power=50.0),
            ],
        )
    )

    registry = PollerRegistry(
        service.get_snapshot,
        interval=0.5,
        plugin_factory=lambda: [ConnectorTransitionPlugin()],
    )
    registry.start(DEVICE_ID, print_snapshot, consumer_id="example")

    try:
        await asyncio.sleep(1)

        start = incoming(
            Action.start_transaction.value,
            call.StartTransaction(
                connector_id=1,
                id_tag="anonymous",
                meter_start=0,
                timestamp=datetime.now(UTC).isoformat(),
            ),
            connector_id=1,
        )
        await service.frame_repo.append(start)
        await service.frame_repo.append(
            response(
                start,
                call_result.StartTransaction(
                    transaction_id=1,
                    id_tag_info={"status": AuthorizationStatus.accepted},
                ),
            )
        )
        await asyncio.sleep(1)

        await service.frame_repo.append(
            incoming(
                Action.status_notification.value,
                call.StatusNotification(
                    connector_id=2,
                    error_code=ChargePointErrorCode.ground_failure,
                    status=ChargePointStatus.faulted,
                ),
                connector_id=2,
            )
        )
        await asyncio.sleep(1)

        await service.frame_repo.append(
            incoming(
                Action.stop_transaction.value,
                call.StopTransaction(
                    meter_stop=4200,
                    timestamp=datetime.now(UTC).isoformat(),
                    transaction_id=1,
                ),
            )
        )
        await asyncio.sleep(1)
    finally:
        await registry.close()
        await db.disconnect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped")
