"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from speckctl.core.model import Connection, DeviceDescriptor, UsbId


class HidTransport(Protocol):
    async def enumerate(self, filters: Sequence[UsbId]) -> list[DeviceDescriptor]:
        """Return attached HID devices matching any of the vendor/product filters."""

    async def connect(self, device_id: str) -> Connection:
        """Open the device and return a connection handle."""

    async def disconnect(self, connection_id: int) -> None:
        """Close a connection previously returned by ``connect``."""

    async def send(self, connection_id: int, report_id: int, data: bytes) -> None:
        """Write one output report."""

    async def receive(self, connection_id: int) -> tuple[int, bytes]:
        """Read one input report, returning ``(report_id, data)``."""
