from __future__ import annotations

from dataclasses import dataclass, field
import re
from types import MappingProxyType
from typing import Mapping

from instrumentlog.errors import ConfigurationError

MANUFACTURER_PROPERTY = "ro.product.manufacturer"
MODEL_PROPERTY = "ro.product.model"

_SEPARATOR = "_"
_ILLEGAL_FILENAME_CHARS = re.compile(r"[/\n\r\t\0\f`?*\\<>|\":]")
_WHITESPACE = re.compile(r"\s+")


def fix_file_name(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    return _ILLEGAL_FILENAME_CHARS.sub(_SEPARATOR, name)


def _strip_whitespace(value: str) -> str:
    return _WHITESPACE.sub("", value)


@dataclass(frozen=True)
class DeviceInfo:
    """Identity of the device a run executes on, captured once per run."""

    serial: str
    avd_name: str = ""
    manufacturer: str = ""
    model: str = ""
    properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.serial, str) or not self.serial.strip():
            raise ConfigurationError("Device serial must be a non-empty string")
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def descriptive_name(self) -> str:
        """Human readable identifier that is also safe to use as a file name.

        Built as ``serial[_avd][_manufacturer][_model]``; whitespace is removed from
        manufacturer and model since emulators report values like ``sdk gphone64``.
        """
        parts = [self.serial]
        if self.avd_name:
            parts.append(self.avd_name)
        manufacturer = _strip_whitespace(self.manufacturer)
        if manufacturer:
            parts.append(manufacturer)
        model = _strip_whitespace(self.model)
        if model:
            parts.append(model)
        return fix_file_name(_SEPARATOR.join(parts))

    @property
    def log_prefix(self) -> str:
        return f"{self.descriptive_name} :   "

    def report_properties(self) -> list[tuple[str, str]]:
        props = [("device.serial", self.serial)]
        if self.avd_name:
            props.append(("device.avd", self.avd_name))
        if self.manufacturer:
            props.append(("device.manufacturer", self.manufacturer))
        if self.model:
            props.append(("device.model", self.model))
        props.extend((key, self.properties[key]) for key in sorted(self.properties))
        return props
