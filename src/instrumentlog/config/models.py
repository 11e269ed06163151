from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from instrumentlog.device.models import DeviceInfo
from instrumentlog.device.resolver import resolve_device


class DeviceConfig(BaseModel):
    serial: str = Field(min_length=1)
    events: str
    avd_name: str = ""
    manufacturer: str | None = None
    model: str | None = None
    properties: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("serial")
    @classmethod
    def _strip_serial(cls, value: str) -> str:
        serial = value.strip()
        if not serial:
            raise ValueError("serial must not be blank")
        return serial

    def to_device_info(self) -> DeviceInfo:
        return resolve_device(
            self.serial,
            self.properties,
            avd_name=self.avd_name,
            manufacturer=self.manufacturer,
            model=self.model,
        )

    def resolve(self) -> DeviceInfo:
        return self.to_device_info()


class ReportConfig(BaseModel):
    output_dir: str = "instrumentlog_out"
    report_suffix: str = ""
    max_workers: int = Field(default=4, ge=1)
    devices: list[DeviceConfig] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _validate_unique_serials(self) -> "ReportConfig":
        seen: set[str] = set()
        for device in self.devices:
            if device.serial in seen:
                raise ValueError(f"Duplicate device serial: {device.serial}")
            seen.add(device.serial)
        return self
