from __future__ import annotations

from typing import Mapping, Protocol

from .models import MANUFACTURER_PROPERTY, MODEL_PROPERTY, DeviceInfo


class DeviceInfoResolver(Protocol):
    def resolve(self) -> DeviceInfo: ...


def resolve_device(
    serial: str,
    properties: Mapping[str, str] | None = None,
    *,
    avd_name: str | None = None,
    manufacturer: str | None = None,
    model: str | None = None,
) -> DeviceInfo:
    """Build a DeviceInfo from a raw device property map.

    Explicit manufacturer and model values win over the ``ro.product.*`` properties.
    """
    props = dict(properties or {})
    if manufacturer is None:
        manufacturer = props.get(MANUFACTURER_PROPERTY, "")
    if model is None:
        model = props.get(MODEL_PROPERTY, "")
    return DeviceInfo(
        serial=serial,
        avd_name=avd_name or "",
        manufacturer=manufacturer,
        model=model,
        properties=props,
    )


class StaticDeviceResolver:
    """Resolver for devices whose identity is known up front, e.g. from a config file."""

    def __init__(self, device: DeviceInfo) -> None:
        self._device = device

    def resolve(self) -> DeviceInfo:
        return self._device
