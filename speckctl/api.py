"""Stable public API for building tooling on top of speckctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from speckctl.core.capabilities import Capabilities, capabilities
from speckctl.core.csv_export import get_csv_header, sample_as_csv
from speckctl.core.display import format_mac_address, format_serial_number
from speckctl.core.errors import (
    ChecksumMismatchError,
    CommandIdMismatchError,
    DeviceDiscoveryError,
    DeviceSelectionError,
    FactoryResetError,
    NoDataError,
    NotConnectedError,
    ProfileLoadError,
    ProfileValidationError,
    ProtocolMismatchError,
    ScanTimeoutError,
    SpeckError,
    TransportConnectError,
    TransportError,
    TransportReceiveError,
    TransportSendError,
    UnsupportedOperationError,
    ValidationError,
    WifiScanError,
)
from speckctl.core.factory import SpeckFactory
from speckctl.core.model import (
    ColorPalette,
    Connection,
    ConnectionStatus,
    DeviceDescriptor,
    DeviceProfile,
    Encryption,
    FeedApiKeyResult,
    NetworkDescriptor,
    Sample,
    Scale,
    SignalStrength,
    SpeckConfig,
    UploadUrl,
    UsbId,
    WifiStatus,
)
from speckctl.core.profile_loader import LoadedProfiles, load_profiles
from speckctl.core.speck import Speck
from speckctl.core.usb_speck import UsbSpeck
from speckctl.core.wifi import DEFAULT_UPLOAD_URL, supported_encryptions
from speckctl.core.wifi_speck import WifiSpeck
from speckctl.transports.base import HidTransport
from speckctl.transports.hidapi import HidapiTransport

__all__ = [
    "SpeckError",
    "NotConnectedError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportReceiveError",
    "NoDataError",
    "ProtocolMismatchError",
    "CommandIdMismatchError",
    "ChecksumMismatchError",
    "ValidationError",
    "UnsupportedOperationError",
    "WifiScanError",
    "ScanTimeoutError",
    "FactoryResetError",
    "DeviceDiscoveryError",
    "DeviceSelectionError",
    "ProfileLoadError",
    "ProfileValidationError",
    "ColorPalette",
    "Connection",
    "ConnectionStatus",
    "DeviceDescriptor",
    "DeviceProfile",
    "Encryption",
    "FeedApiKeyResult",
    "NetworkDescriptor",
    "Sample",
    "Scale",
    "SignalStrength",
    "SpeckConfig",
    "UploadUrl",
    "UsbId",
    "WifiStatus",
    "Capabilities",
    "capabilities",
    "get_csv_header",
    "sample_as_csv",
    "format_mac_address",
    "format_serial_number",
    "DEFAULT_UPLOAD_URL",
    "supported_encryptions",
    "LoadedProfiles",
    "load_profiles",
    "Speck",
    "UsbSpeck",
    "WifiSpeck",
    "SpeckFactory",
    "HidTransport",
    "HidapiTransport",
]
