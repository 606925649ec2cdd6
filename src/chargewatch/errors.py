"""Exceptions raised by the live-state reconstructor."""


class ChargewatchError(Exception):
    """Base class for all chargewatch errors."""


class StoreUnavailable(ChargewatchError):
    """The frame or metadata store could not be queried."""


class MalformedFrame(ChargewatchError):
    """A stored frame could not be parsed into a Frame."""

    def __init__(self, message: str, frame_id: int | None = None):
        super().__init__(message)
        self.frame_id = frame_id


class DeviceNotFound(ChargewatchError):
    """No metadata exists for the requested device."""

    def __init__(self, device_id: str):
        super().__init__(f"Unknown device: {device_id}")
        self.device_id = device_id
