"""Domain-specific errors for speckctl."""

from __future__ import annotations


class SpeckError(Exception):
    """Base error for speckctl."""


class NotConnectedError(SpeckError):
    """Raised when an operation needs a connected Speck but there is none."""


class TransportError(SpeckError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when opening a HID connection fails."""


class TransportSendError(TransportError):
    """Raised when writing a report fails."""


class TransportReceiveError(TransportError):
    """Raised when reading a report fails."""


class NoDataError(SpeckError):
    """Raised when the device answers a command with an empty report."""


class ProtocolMismatchError(SpeckError):
    """Raised when a response report does not belong to the request."""


class CommandIdMismatchError(ProtocolMismatchError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Failed to read response: invalid command ID. Expected [{expected}] actual [{actual}]"
        )
        self.expected = expected
        self.actual = actual


class ChecksumMismatchError(ProtocolMismatchError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Failed to read response: invalid checksum. Expected [{expected}] actual [{actual}]"
        )
        self.expected = expected
        self.actual = actual


class ValidationError(SpeckError):
    """Raised when caller input is rejected before any I/O."""


class UnsupportedOperationError(SpeckError):
    """Raised when the connected Speck lacks the capability for an operation."""


class WifiScanError(SpeckError):
    """Raised when a Wi-Fi network scan cannot be started or completed."""


class ScanTimeoutError(WifiScanError):
    """Raised when a Wi-Fi scan does not finish in time."""


class FactoryResetError(SpeckError):
    def __init__(self, errors: list[str] | tuple[str, ...]) -> None:
        self.errors = tuple(errors)
        super().__init__("Factory reset failed: " + " ".join(self.errors))


class DeviceDiscoveryError(SpeckError):
    """Raised when HID enumeration fails."""


class DeviceSelectionError(SpeckError):
    """Raised when a HID device cannot be mapped to a known Speck."""


class ProfileValidationError(SpeckError):
    """Raised when a device profile does not conform to schema or semantics."""


class ProfileLoadError(SpeckError):
    """Raised when reading device profile sources fails."""
