from .device import DeviceRepository
from .frame import FrameRepository

__all__ = [
    "DeviceRepository",
    "FrameRepository",
]
