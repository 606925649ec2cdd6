"""
Field extraction from logged frames.

A frame may carry a field in several places: its own column, the structured
``message_data`` payload, or the original wire payload in ``raw``. Each place
is modelled as a strategy, a pure function ``Frame -> value | None``, and a
lookup is an ordered tuple of strategies where the first non-empty value wins.

Strategies never raise. A payload of the wrong shape simply yields ``None``.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ocpp.messages import MessageType

from ..models import Frame

Strategy = Callable[[Frame], Any]

# Index of the payload in a stored raw frame, and in an OCPP-J CALL array
# ([MessageType.Call, message_id, action, payload]).
RAW_PAYLOAD_INDEX = 2
CALL_PAYLOAD_INDEX = 3


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _raw_element(frame: Frame, index: int) -> Mapping | None:
    raw = frame.raw
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        return None
    if len(raw) <= index:
        return None
    element = raw[index]
    return element if isinstance(element, Mapping) else None


def from_column(name: str) -> Strategy:
    """Read an attribute of the frame itself."""

    def strategy(frame: Frame) -> Any:
        return getattr(frame, name, None)

    strategy.__name__ = f"from_column({name})"
    return strategy


def from_message_data(key: str) -> Strategy:
    """Read ``message_data[key]``."""

    def strategy(frame: Frame) -> Any:
        data = frame.message_data
        if not isinstance(data, Mapping):
            return None
        return data.get(key)

    strategy.__name__ = f"from_message_data({key})"
    return strategy


def from_raw_payload(key: str) -> Strategy:
    """Read ``raw[2][key]``."""

    def strategy(frame: Frame) -> Any:
        payload = _raw_element(frame, RAW_PAYLOAD_INDEX)
        return payload.get(key) if payload is not None else None

    strategy.__name__ = f"from_raw_payload({key})"
    return strategy


def from_raw_call_payload(key: str) -> Strategy:
    """Read ``raw[3][key]`` when ``raw`` is a literal OCPP-J CALL array."""

    def strategy(frame: Frame) -> Any:
        raw = frame.raw
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence) or not raw:
            return None
        if raw[0] != MessageType.Call:
            return None
        payload = _raw_element(frame, CALL_PAYLOAD_INDEX)
        return payload.get(key) if payload is not None else None

    strategy.__name__ = f"from_raw_call_payload({key})"
    return strategy


def first_of(strategies: Sequence[Strategy], frame: Frame, default: Any = None) -> Any:
    """Return the first present value produced by ``strategies`` for ``frame``."""
    for strategy in strategies:
        value = strategy(frame)
        if _is_present(value):
            return value
    return default


def payload_chain(key: str) -> tuple[Strategy, ...]:
    """The standard message_data -> raw[2] -> raw CALL payload chain for ``key``."""
    return (from_message_data(key), from_raw_payload(key), from_raw_call_payload(key))


CONNECTOR_ID_CHAIN: tuple[Strategy, ...] = (
    from_column("connector_id"),
    *payload_chain("connectorId"),
)
TRANSACTION_ID_CHAIN = payload_chain("transactionId")
STATUS_CHAIN = payload_chain("status")
ERROR_CODE_CHAIN = payload_chain("errorCode")


def resolve_connector_id(frame: Frame) -> int | None:
    """
    Resolve the connector a frame refers to.

    Falls back to 0 (not connector-specific) when no source carries a connector
    id. A value that is not an integer resolves to None and matches nothing.
    """
    value = first_of(CONNECTOR_ID_CHAIN, frame, default=0)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_transaction_id(frame: Frame) -> Any:
    """Resolve the transaction id carried by a frame, or None."""
    return first_of(TRANSACTION_ID_CHAIN, frame)


def resolve_status(frame: Frame) -> str | None:
    value = first_of(STATUS_CHAIN, frame)
    return str(value) if value is not None else None


def resolve_error_code(frame: Frame) -> str | None:
    value = first_of(ERROR_CODE_CHAIN, frame)
    return str(value) if value is not None else None
