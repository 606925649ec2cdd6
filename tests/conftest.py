"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from datetime import UTC, datetime, timedelta
from itertools import count
from pathlib import Path

import pytest

from chargewatch.database import Database
from chargewatch.models import ConnectorDef, DeviceMetadata, Direction, Frame

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)


class FrameFactory:
    """Builds frames for one device relative to a fixed ``now``."""

    def __init__(self, device_id: str = "CP001", now: datetime = NOW):
        self.device_id = device_id
        self.now = now
        self._ids = count(1)

    def make(self, message, direction=Direction.INCOMING, ago=timedelta(0), **kwargs) -> Frame:
        kwargs.setdefault("timestamp", self.now - ago)
        kwargs.setdefault("id", next(self._ids))
        kwargs.setdefault("device_id", self.device_id)
        return Frame(direction=direction, message=message, **kwargs)

    def start(
        self, connector_id, message_id, ago=timedelta(minutes=10), in_column=True, **kwargs
    ) -> Frame:
        """StartTransaction on ``connector_id``; ``in_column=False`` leaves the column empty."""
        kwargs["connector_id"] = connector_id if in_column else None
        kwargs.setdefault(
            "message_data",
            {"connectorId": connector_id, "idTag": "TAG-1", "meterStart": 1000},
        )
        return self.make("StartTransaction", ago=ago, message_id=message_id, **kwargs)

    def response(self, message_id, transaction_id, ago=timedelta(minutes=10), **kwargs) -> Frame:
        kwargs.setdefault(
            "message_data",
            {"transactionId": transaction_id, "idTagInfo": {"status": "Accepted"}},
        )
        return self.make(
            "Response", direction=Direction.OUTGOING, ago=ago, message_id=message_id, **kwargs
        )

    def stop(self, transaction_id, ago=timedelta(minutes=1), **kwargs) -> Frame:
        kwargs.setdefault("message_data", {"transactionId": transaction_id, "meterStop": 5000})
        return self.make("StopTransaction", ago=ago, message_id=f"stop-{transaction_id}", **kwargs)

    def status(self, connector_id, status, error_code="NoError", ago=timedelta(minutes=1)) -> Frame:
        return self.make(
            "StatusNotification",
            ago=ago,
            connector_id=connector_id,
            message_data={"connectorId": connector_id, "status": status, "errorCode": error_code},
        )


@pytest.fixture(scope="session")
def event_loop_policy():
    """Set event loop policy for async tests."""
    return asyncio.get_event_loop_policy()


@pytest.fixture
def now():
    """Fixed evaluation instant shared by the frame factory."""
    return NOW


@pytest.fixture
def frames():
    """Frame factory for device CP001."""
    return FrameFactory()


@pytest.fixture
async def temp_db():
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    # Initialize database with schema
    db = Database(db_path)
    await db.initialize_schema()

    yield db

    # Cleanup
    await db.disconnect()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
async def db_connection(temp_db):
    """Provide a database connection for testing."""
    conn = await temp_db.connect()
    yield conn
    # Connection is cleaned up by temp_db fixture


@pytest.fixture
def sample_device():
    """Two-connector device seen one minute before NOW."""
    return DeviceMetadata(
        device_id="CP001",
        name="Depot charger",
        last_seen=NOW - timedelta(minutes=1),
        connectors=[
            ConnectorDef(connector_id=1, connector_type="Type2", power=22.0),
            ConnectorDef(connector_id=2, connector_type="CCS2", power=50.0),
        ],
    )
