"""Domain models for the charge-point live-state reconstructor."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from ocpp.v16.enums import ChargePointStatus

TransactionId = Union[int, str]


class Direction(str, Enum):
    """Direction of a logged frame relative to the central system."""

    INCOMING = "Incoming"
    OUTGOING = "Outgoing"


class ConnectorStatus(str, Enum):
    """Derived connector status, using the OCPP 1.6 status vocabulary."""

    AVAILABLE = ChargePointStatus.available.value
    CHARGING = ChargePointStatus.charging.value
    UNAVAILABLE = ChargePointStatus.unavailable.value
    FAULTED = ChargePointStatus.faulted.value


@dataclass(frozen=True)
class Frame:
    """One logged protocol message exchanged with a charge point."""

    device_id: str
    direction: Direction
    message: str
    connector_id: Optional[int] = None
    message_id: Optional[str] = None
    message_data: Optional[dict[str, Any]] = None
    raw: Any = None
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def effective_timestamp(self) -> Optional[datetime]:
        """The recorded instant: ``timestamp`` if present, else ``created_at``."""
        return self.timestamp if self.timestamp is not None else self.created_at

    @property
    def is_incoming(self) -> bool:
        return self.direction == Direction.INCOMING

    @property
    def is_outgoing(self) -> bool:
        return self.direction == Direction.OUTGOING


@dataclass(frozen=True)
class ConnectorDef:
    """Static connector definition from device metadata."""

    connector_id: int
    connector_type: str = ""
    power: Optional[float] = None


@dataclass
class DeviceMetadata:
    """Device metadata consumed by the reconstructor."""

    device_id: str
    last_seen: Optional[datetime] = None
    connectors: list[ConnectorDef] = field(default_factory=list)
    name: str = ""


@dataclass(frozen=True)
class ActiveTransaction:
    """A derived in-progress charging transaction on one connector."""

    transaction_id: TransactionId
    connector_id: int
    start_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "connector_id": self.connector_id,
            "start_time": self.start_time.isoformat(),
        }


@dataclass(frozen=True)
class ConnectorSnapshot:
    """Derived state of one connector."""

    connector_id: int
    status: ConnectorStatus
    active_transaction: Optional[ActiveTransaction] = None
    connector_type: str = ""
    power: Optional[float] = None
    error_code: Optional[str] = None
    outcome: Optional[str] = None

    @property
    def is_charging(self) -> bool:
        return self.status == ConnectorStatus.CHARGING

    def to_dict(self) -> dict[str, Any]:
        return {
            "connector_id": self.connector_id,
            "status": self.status.value,
            "active_transaction": (
                self.active_transaction.to_dict() if self.active_transaction else None
            ),
            "connector_type": self.connector_type,
            "power": self.power,
            "error_code": self.error_code,
            "outcome": self.outcome,
        }


@dataclass(frozen=True)
class DeviceSnapshot:
    """Derived, recomputable view of a device and its connectors."""

    device_id: str
    online: bool
    connectors: tuple[ConnectorSnapshot, ...] = ()
    last_seen: Optional[datetime] = None
    evaluated_at: Optional[datetime] = None

    @property
    def display_status(self) -> str:
        """Header status: Charging if any connector charges, else Online/Offline."""
        if any(connector.is_charging for connector in self.connectors):
            return ConnectorStatus.CHARGING.value
        return "Online" if self.online else "Offline"

    def connector(self, connector_id: int) -> Optional[ConnectorSnapshot]:
        """Get the snapshot of a connector by its id."""
        for connector in self.connectors:
            if connector.connector_id == connector_id:
                return connector
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "online": self.online,
            "status": self.display_status,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
            "connectors": [connector.to_dict() for connector in self.connectors],
        }
