"""In-memory HID transport and Speck simulators shared by the tests."""

from __future__ import annotations

import asyncio
import itertools
import struct
from collections.abc import Callable, Sequence

from speckctl.core.errors import TransportConnectError, TransportSendError
from speckctl.core.frame import CommandIdGenerator
from speckctl.core.model import Connection, DeviceDescriptor, UsbId
from speckctl.core.usb_speck import UsbSpeck
from speckctl.core.wifi_speck import WifiSpeck

Handler = Callable[[bytes, bytearray], None]

USB_DESCRIPTOR = DeviceDescriptor(device_id="usb-1", vendor_id=0x2354, product_id=0x3333)
WIFI_DESCRIPTOR = DeviceDescriptor(device_id="wifi-1", vendor_id=0x2B6E, product_id=0x3335)


class FakeSpeckDevice:
    """In-memory device answering reports by command character."""

    def __init__(self, report_length: int) -> None:
        self.report_length = report_length
        self.handlers: dict[str, Handler] = {}
        self.requests: list[bytes] = []

    def respond(self, request: bytes) -> bytes:
        self.requests.append(request)
        response = bytearray(self.report_length)
        response[0] = request[0]
        handler = self.handlers.get(chr(request[0]))
        if handler is not None:
            handler(request, response)
        response[-1] = request[-1]
        response[-2] = sum(response[:-2]) & 0xFF
        return bytes(response)

    def commands(self) -> list[str]:
        return [chr(r[0]) for r in self.requests]


class FakeUsbSpeck(FakeSpeckDevice):
    def __init__(self, protocol_version: int = 3) -> None:
        super().__init__(16)
        self.protocol_version = protocol_version
        self.logging_interval = 5
        self.sample_count = 42
        self.sample = {"time": 1_500_000_000, "count": 1234, "temperature": 72, "humidity": 40, "raw": 321}
        self.delete_result = 1
        self.handlers.update(
            {
                "I": self._info,
                "i": self._extended_info,
                "S": self._sample,
                "G": self._sample,
                "P": self._count,
                "D": self._delete,
            }
        )

    def _info(self, request: bytes, response: bytearray) -> None:
        if request[5]:
            self.logging_interval = request[5]
        response[1:11] = bytes(range(0x10, 0x1A))
        response[10] = 7
        response[11] = self.protocol_version
        response[12] = self.logging_interval
        response[13] = 9

    def _extended_info(self, request: bytes, response: bytearray) -> None:
        response[1:9] = bytes(range(0xA0, 0xA8))

    def _sample(self, request: bytes, response: bytearray) -> None:
        struct.pack_into(">I", response, 1, self.sample["time"])
        struct.pack_into(">I", response, 5, self.sample["count"])
        struct.pack_into(">H", response, 9, self.sample["temperature"])
        response[11] = self.sample["humidity"]
        struct.pack_into(">H", response, 12, self.sample["raw"])

    def _count(self, request: bytes, response: bytearray) -> None:
        struct.pack_into(">I", response, 1, self.sample_count)

    def _delete(self, request: bytes, response: bytearray) -> None:
        response[5] = self.delete_result


class FakeWifiSpeck(FakeSpeckDevice):
    def __init__(self, *, hardware_version: int = 6, protocol_version: int = 2) -> None:
        super().__init__(128)
        self.hardware_version = hardware_version
        self.protocol_version = protocol_version
        self.logging_interval = 30
        self.palette = 1
        self.scale = 1
        self.ignore_palette_writes = False
        self.mac = bytes.fromhex("a1b2c3d4e5f6")
        self.feed_key = "0" * 64
        self.feed_key_enabled = False
        self.echo_feed_key = True
        self.connection_status = 1
        self.ip = bytes([192, 168, 1, 23])
        self.start_scan = True
        self.scan_polls = 0
        self.available: list[tuple[str, int, int]] = []
        self._available_cursor = 0
        self.stored: list[tuple[str, int]] = []
        self.is_removing = True
        self.is_joining = True
        self.is_calibrating = True
        self.delete_result = 1
        self.upload = ("esdr.cmucreatelab.org", "80", "/api/v1/feed")
        self.sample = {
            "time": 1_600_000_000,
            "concentration": 125,
            "temperature": -15,
            "humidity": 55,
            "raw": 900,
            "count": 4567,
        }
        self.handlers.update(
            {
                "I": self._info,
                "S": self._sample,
                "G": self._sample,
                "P": self._count,
                "D": self._delete,
                "w": self._status,
                "k": self._feed_key,
                "s": self._scan,
                "n": self._available_network,
                "j": self._join,
                "t": self._stored_network,
                "r": self._remove,
                "u": self._upload_url,
                "c": self._calibrate,
            }
        )

    def _info(self, request: bytes, response: bytearray) -> None:
        if request[5]:
            self.logging_interval = request[5]
        if request[6] != 255 and not self.ignore_palette_writes:
            self.palette = request[6]
        if request[7] != 255:
            self.scale = request[7]
        response[1:17] = bytes(range(1, 17))
        response[17] = self.hardware_version
        response[18] = self.protocol_version
        response[19] = self.logging_interval
        response[20] = 12
        response[21] = self.palette
        response[22] = self.scale

    def _sample(self, request: bytes, response: bytearray) -> None:
        struct.pack_into(">I", response, 1, self.sample["time"])
        struct.pack_into(">I", response, 5, self.sample["concentration"])
        struct.pack_into(">h", response, 9, self.sample["temperature"])
        response[11] = self.sample["humidity"]
        struct.pack_into(">H", response, 12, self.sample["raw"])
        struct.pack_into(">I", response, 14, self.sample["count"])

    def _count(self, request: bytes, response: bytearray) -> None:
        struct.pack_into(">I", response, 1, 7)

    def _delete(self, request: bytes, response: bytearray) -> None:
        response[5] = self.delete_result

    def _status(self, request: bytes, response: bytearray) -> None:
        response[1:7] = self.mac
        response[7] = 1 if self.feed_key_enabled else 0
        response[8:72] = self.feed_key.encode("ascii")
        response[72] = 1
        scanning = self.scan_polls > 0
        if scanning:
            self.scan_polls -= 1
        response[73] = 1 if scanning else 0
        response[74] = len(self.available)
        response[75] = len(self.stored)
        response[78] = self.connection_status
        response[79:83] = self.ip

    def _feed_key(self, request: bytes, response: bytearray) -> None:
        self.feed_key_enabled = request[5] == 1
        self.feed_key = request[6:70].decode("ascii")
        response[1] = 1 if self.feed_key_enabled else 0
        echoed = self.feed_key if self.echo_feed_key else "f" * 64
        response[2:66] = echoed.encode("ascii")

    def _scan(self, request: bytes, response: bytearray) -> None:
        self._available_cursor = 0
        response[1] = 1 if self.start_scan else 0

    def _available_network(self, request: bytes, response: bytearray) -> None:
        if self._available_cursor >= len(self.available):
            return
        ssid, encryption, rssi = self.available[self._available_cursor]
        self._available_cursor += 1
        encoded = ssid.encode("ascii")
        response[1] = 1
        response[2] = encryption
        response[3] = len(encoded)
        response[4 : 4 + len(encoded)] = encoded
        response[36] = rssi + 128

    def _join(self, request: bytes, response: bytearray) -> None:
        response[1] = 1 if self.is_joining else 0

    def _stored_network(self, request: bytes, response: bytearray) -> None:
        index = request[5]
        if index >= len(self.stored):
            return
        ssid, encryption = self.stored[index]
        encoded = ssid.encode("ascii")
        response[1] = encryption
        response[2] = len(encoded)
        response[3 : 3 + len(encoded)] = encoded

    def _remove(self, request: bytes, response: bytearray) -> None:
        response[1] = 1 if self.is_removing else 0

    def _upload_url(self, request: bytes, response: bytearray) -> None:
        if request[5] == 1:
            port_len, host_len, path_len = request[6], request[7], request[8]
            self.upload = (
                request[14 : 14 + host_len].decode("ascii"),
                request[9 : 9 + port_len].decode("ascii"),
                request[54 : 54 + path_len].decode("ascii"),
            )
        host, port, path = (part.encode("ascii") for part in self.upload)
        response[1], response[2], response[3] = len(port), len(host), len(path)
        response[4 : 4 + len(port)] = port
        response[9 : 9 + len(host)] = host
        response[49 : 49 + len(path)] = path

    def _calibrate(self, request: bytes, response: bytearray) -> None:
        response[1] = 1 if self.is_calibrating else 0


class FakeHidTransport:
    def __init__(self, devices: dict[str, FakeSpeckDevice], descriptors: Sequence[DeviceDescriptor] = ()) -> None:
        self.devices = devices
        self.descriptors = list(descriptors)
        self.connections: dict[int, str] = {}
        self.disconnected: list[int] = []
        self.sent: list[bytes] = []
        self.receive_delays: list[float] = []
        self.tampers: list[Callable[[bytes], bytes]] = []
        self.failing_sends = 0
        self.failing_connects: set[str] = set()
        self.enumerate_error: Exception | None = None
        self._pending: dict[int, list[bytes]] = {}
        self._ids = itertools.count(1)

    async def enumerate(self, filters: Sequence[UsbId]) -> list[DeviceDescriptor]:
        if self.enumerate_error is not None:
            raise self.enumerate_error
        wanted = set(filters)
        return [d for d in self.descriptors if UsbId(d.vendor_id, d.product_id) in wanted]

    async def connect(self, device_id: str) -> Connection:
        if device_id in self.failing_connects or device_id not in self.devices:
            raise TransportConnectError(f"cannot open {device_id}")
        connection = Connection(connection_id=next(self._ids), device_id=device_id)
        self.connections[connection.connection_id] = device_id
        self._pending[connection.connection_id] = []
        return connection

    async def disconnect(self, connection_id: int) -> None:
        self.connections.pop(connection_id)
        self.disconnected.append(connection_id)

    async def send(self, connection_id: int, report_id: int, data: bytes) -> None:
        assert report_id == 0
        if self.failing_sends:
            self.failing_sends -= 1
            raise TransportSendError("write failed")
        self.sent.append(bytes(data))
        device = self.devices[self.connections[connection_id]]
        self._pending[connection_id].append(device.respond(bytes(data)))

    async def receive(self, connection_id: int) -> tuple[int, bytes]:
        if self.receive_delays:
            await asyncio.sleep(self.receive_delays.pop(0))
        data = self._pending[connection_id].pop(0)
        if self.tampers:
            data = self.tampers.pop(0)(data)
        return 0, data


def run(coro):
    return asyncio.run(coro)


def make_usb_speck(device: FakeUsbSpeck) -> tuple[UsbSpeck, FakeHidTransport]:
    transport = FakeHidTransport({USB_DESCRIPTOR.device_id: device}, [USB_DESCRIPTOR])
    return UsbSpeck(USB_DESCRIPTOR, transport, command_ids=CommandIdGenerator(seed=10)), transport


def make_wifi_speck(device: FakeWifiSpeck, **options) -> tuple[WifiSpeck, FakeHidTransport]:
    transport = FakeHidTransport({WIFI_DESCRIPTOR.device_id: device}, [WIFI_DESCRIPTOR])
    options.setdefault("scan_poll_interval_s", 0.001)
    options.setdefault("scan_timeout_s", 1.0)
    speck = WifiSpeck(WIFI_DESCRIPTOR, transport, command_ids=CommandIdGenerator(seed=200), **options)
    return speck, transport

