"""Discovery of attached Specks and construction of the matching variant."""

from __future__ import annotations

import logging

from speckctl.core.capabilities import WIFI
from speckctl.core.device_match import profile_for_descriptor
from speckctl.core.errors import DeviceDiscoveryError, DeviceSelectionError, SpeckError
from speckctl.core.model import DeviceDescriptor
from speckctl.core.profile_loader import LoadedProfiles, load_profiles
from speckctl.core.speck import Speck
from speckctl.core.usb_speck import UsbSpeck
from speckctl.core.wifi_speck import DEFAULT_SCAN_POLL_INTERVAL_S, DEFAULT_SCAN_TIMEOUT_S, WifiSpeck
from speckctl.transports.base import HidTransport
from speckctl.transports.hidapi import HidapiTransport

LOGGER = logging.getLogger(__name__)


class SpeckFactory:
    def __init__(
        self,
        *,
        transport: HidTransport | None = None,
        profiles: LoadedProfiles | None = None,
        scan_poll_interval_s: float = DEFAULT_SCAN_POLL_INTERVAL_S,
        scan_timeout_s: float = DEFAULT_SCAN_TIMEOUT_S,
    ) -> None:
        loaded = profiles or load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self._usb_ids = loaded.usb_ids()
        self.transport = transport or HidapiTransport()
        self.scan_poll_interval_s = scan_poll_interval_s
        self.scan_timeout_s = scan_timeout_s

    async def enumerate(self) -> list[DeviceDescriptor]:
        try:
            return list(await self.transport.enumerate(self._usb_ids))
        except DeviceDiscoveryError:
            raise
        except SpeckError as exc:
            raise DeviceDiscoveryError(f"HID device lookup failed: {exc}") from exc

    def speck_for(self, descriptor: DeviceDescriptor) -> Speck:
        profile = profile_for_descriptor(descriptor, self.profiles)
        if profile is None:
            raise DeviceSelectionError(
                f"No device profile matches {descriptor.vendor_id:04x}:{descriptor.product_id:04x}"
            )
        if profile.variant == WIFI:
            return WifiSpeck(
                descriptor,
                self.transport,
                scan_poll_interval_s=self.scan_poll_interval_s,
                scan_timeout_s=self.scan_timeout_s,
            )
        return UsbSpeck(descriptor, self.transport)

    async def create(self) -> Speck | None:
        """Connect to the first attached Speck that responds.

        Returns ``None`` when no Speck is attached. When every candidate fails,
        the last connection error is raised.
        """
        last_error: SpeckError | None = None
        for descriptor in await self.enumerate():
            speck = self.speck_for(descriptor)
            try:
                await speck.connect()
            except SpeckError as exc:
                LOGGER.warning("Could not connect to %s: %s", descriptor.device_id, exc)
                last_error = exc
                continue
            return speck
        if last_error is not None:
            raise last_error
        return None
