from .domain import (
    ActiveTransaction,
    ConnectorDef,
    ConnectorSnapshot,
    ConnectorStatus,
    DeviceMetadata,
    DeviceSnapshot,
    Direction,
    Frame,
    TransactionId,
)

__all__ = [
    "ActiveTransaction",
    "ConnectorDef",
    "ConnectorSnapshot",
    "ConnectorStatus",
    "DeviceMetadata",
    "DeviceSnapshot",
    "Direction",
    "Frame",
    "TransactionId",
]
