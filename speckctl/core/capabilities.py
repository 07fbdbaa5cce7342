"""Capability matrix derived from the device variant and reported versions."""

from __future__ import annotations

from dataclasses import dataclass

USB = "usb"
WIFI = "wifi"


@dataclass(frozen=True)
class Capabilities:
    has_wifi: bool = False
    has_calibration_mode: bool = False
    can_mutate_logging_interval: bool = False
    can_get_sample_count: bool = False
    has_temperature_sensor: bool = False
    has_humidity_sensor: bool = False
    has_particle_count: bool = False
    has_particle_concentration: bool = False
    has_device_version_info: bool = False
    has_extended_id: bool = False
    can_delete_all_samples: bool = False
    can_select_palette: bool = False
    can_select_scale: bool = False
    can_mutate_upload_url: bool = False


def _at_least(version: int | None, minimum: int) -> bool:
    return version is not None and version >= minimum


def _at_most(version: int | None, maximum: int) -> bool:
    return version is not None and version <= maximum


def capabilities(
    kind: str,
    protocol_version: int | None = None,
    hardware_version: int | None = None,
) -> Capabilities:
    """Return the feature flags for a variant; unknown versions disable gated flags."""
    if kind == USB:
        return Capabilities(
            can_mutate_logging_interval=_at_least(protocol_version, 2),
            can_get_sample_count=_at_least(protocol_version, 2),
            has_temperature_sensor=_at_most(protocol_version, 2),
            has_humidity_sensor=True,
            has_particle_count=_at_most(protocol_version, 2),
            has_particle_concentration=_at_least(protocol_version, 3),
            has_device_version_info=_at_least(protocol_version, 3),
            has_extended_id=_at_least(protocol_version, 3),
        )
    if kind == WIFI:
        return Capabilities(
            has_wifi=True,
            has_calibration_mode=True,
            can_mutate_logging_interval=True,
            can_get_sample_count=True,
            has_temperature_sensor=True,
            has_humidity_sensor=_at_least(hardware_version, 6),
            has_particle_count=True,
            has_particle_concentration=True,
            has_device_version_info=True,
            has_extended_id=True,
            can_delete_all_samples=True,
            can_select_palette=True,
            can_select_scale=True,
            can_mutate_upload_url=_at_least(protocol_version, 2),
        )
    raise ValueError(f"Unknown Speck variant '{kind}'")
