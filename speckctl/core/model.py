"""Core data models used across the driver, factory, and CLI."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UsbId:
    vendor_id: int
    product_id: int


@dataclass(frozen=True)
class DeviceProfile:
    id: str
    name: str
    variant: str
    usb_ids: tuple[UsbId, ...]


@dataclass(frozen=True)
class DeviceDescriptor:
    device_id: str
    vendor_id: int
    product_id: int
    serial_number: str | None = None
    product_name: str | None = None


@dataclass(frozen=True)
class Connection:
    connection_id: int
    device_id: str


@dataclass(frozen=True)
class ColorPalette:
    name: str
    id: int | None


@dataclass(frozen=True)
class Scale:
    name: str
    abbreviation: str
    id: int | None


@dataclass(frozen=True)
class SpeckConfig:
    id: str
    protocol_version: int
    logging_interval_secs: int
    firmware_version: int | None = None
    hardware_version: int | None = None
    color_palette: ColorPalette | None = None
    scale: Scale | None = None


@dataclass(frozen=True)
class Sample:
    sample_time_secs: int
    raw_particle_count: int
    particle_count: int | None = None
    particle_concentration: float | None = None
    temperature: float | None = None
    humidity: int | None = None


@dataclass(frozen=True)
class ConnectionStatus:
    name: str
    id: int
    is_connected: bool = False


@dataclass(frozen=True)
class WifiStatus:
    mac_address: str
    is_feed_api_key_enabled: bool
    feed_api_key: str
    is_initialized: bool
    is_scanning: bool
    num_available_networks: int
    num_stored_networks: int
    is_removing_stored_networks: bool
    is_joining: bool
    connection_status: ConnectionStatus | None
    ip_address: str | None = None


@dataclass(frozen=True)
class Encryption:
    name: str
    id: int


@dataclass(frozen=True)
class SignalStrength:
    name: str
    id: int


@dataclass(frozen=True)
class NetworkDescriptor:
    ssid: str
    encryption: Encryption | None
    key: str | None = None
    rssi: int | None = None
    signal_strength: SignalStrength | None = None


@dataclass(frozen=True)
class FeedApiKeyResult:
    success: bool
    is_enabled: bool
    key: str


@dataclass(frozen=True)
class UploadUrl:
    host: str
    port: int | str
    path: str

    def __str__(self) -> str:
        return f"{self.host}:{self.port}{self.path}"
