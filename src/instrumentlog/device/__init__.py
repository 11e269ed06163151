from .models import MANUFACTURER_PROPERTY, MODEL_PROPERTY, DeviceInfo, fix_file_name
from .resolver import DeviceInfoResolver, StaticDeviceResolver, resolve_device

__all__ = [
    "DeviceInfo",
    "DeviceInfoResolver",
    "MANUFACTURER_PROPERTY",
    "MODEL_PROPERTY",
    "StaticDeviceResolver",
    "fix_file_name",
    "resolve_device",
]
