"""HID transport implementation backed by the ``hidapi`` bindings."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Sequence
from typing import Any

import hid

from speckctl.core.errors import (
    DeviceDiscoveryError,
    TransportConnectError,
    TransportError,
    TransportReceiveError,
    TransportSendError,
)
from speckctl.core.model import Connection, DeviceDescriptor, UsbId

LOGGER = logging.getLogger(__name__)

_MAX_REPORT_SIZE = 128


class HidapiTransport:
    """Blocking ``hid.device`` calls run in worker threads via ``asyncio.to_thread``."""

    def __init__(self, *, read_timeout_s: float = 3.0, report_size: int = _MAX_REPORT_SIZE) -> None:
        self.read_timeout_s = read_timeout_s
        self.report_size = report_size
        self._devices: dict[int, Any] = {}
        self._ids = itertools.count(1)

    async def enumerate(self, filters: Sequence[UsbId]) -> list[DeviceDescriptor]:
        return await asyncio.to_thread(self._enumerate_blocking, tuple(filters))

    def _enumerate_blocking(self, filters: tuple[UsbId, ...]) -> list[DeviceDescriptor]:
        found: list[DeviceDescriptor] = []
        seen: set[str] = set()
        for usb_id in filters:
            try:
                infos = hid.enumerate(usb_id.vendor_id, usb_id.product_id)
            except (OSError, ValueError) as exc:
                raise DeviceDiscoveryError(
                    f"HID enumeration failed for {usb_id.vendor_id:04x}:{usb_id.product_id:04x}: {exc}"
                ) from exc
            for info in infos:
                device_id = _path_to_id(info["path"])
                if device_id in seen:
                    continue
                seen.add(device_id)
                found.append(
                    DeviceDescriptor(
                        device_id=device_id,
                        vendor_id=int(info["vendor_id"]),
                        product_id=int(info["product_id"]),
                        serial_number=info.get("serial_number") or None,
                        product_name=info.get("product_string") or None,
                    )
                )
        return found

    async def connect(self, device_id: str) -> Connection:
        device = await asyncio.to_thread(self._open_blocking, device_id)
        connection = Connection(connection_id=next(self._ids), device_id=device_id)
        self._devices[connection.connection_id] = device
        LOGGER.debug("Opened HID device %s as connection %d", device_id, connection.connection_id)
        return connection

    @staticmethod
    def _open_blocking(device_id: str) -> Any:
        device = hid.device()
        try:
            device.open_path(device_id.encode("utf-8", errors="surrogateescape"))
        except (OSError, ValueError) as exc:
            raise TransportConnectError(f"Could not open HID device {device_id}: {exc}") from exc
        return device

    async def disconnect(self, connection_id: int) -> None:
        device = self._devices.pop(connection_id, None)
        if device is None:
            raise TransportError(f"Unknown HID connection {connection_id}")
        await asyncio.to_thread(device.close)
        LOGGER.debug("Closed HID connection %d", connection_id)

    async def send(self, connection_id: int, report_id: int, data: bytes) -> None:
        device = self._device(connection_id)
        report = bytes([report_id]) + bytes(data)
        try:
            written = await asyncio.to_thread(device.write, report)
        except (OSError, ValueError) as exc:
            raise TransportSendError(f"HID write failed: {exc}") from exc
        if written < 0:
            raise TransportSendError(f"HID write failed on connection {connection_id}")

    async def receive(self, connection_id: int) -> tuple[int, bytes]:
        device = self._device(connection_id)
        timeout_ms = int(self.read_timeout_s * 1000)
        try:
            data = await asyncio.to_thread(device.read, self.report_size, timeout_ms)
        except (OSError, ValueError) as exc:
            raise TransportReceiveError(f"HID read failed: {exc}") from exc
        return 0, bytes(data)

    def _device(self, connection_id: int) -> Any:
        try:
            return self._devices[connection_id]
        except KeyError:
            raise TransportError(f"Unknown HID connection {connection_id}") from None


def _path_to_id(path: bytes | str) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="surrogateescape")
    return path
