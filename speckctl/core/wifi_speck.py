"""Speck variant for the 128-byte Wi-Fi capable devices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from speckctl.core.capabilities import WIFI
from speckctl.core.errors import (
    FactoryResetError,
    ScanTimeoutError,
    SpeckError,
    UnsupportedOperationError,
    ValidationError,
    WifiScanError,
)
from speckctl.core.frame import CommandIdGenerator, Frame
from speckctl.core.model import (
    ColorPalette,
    ConnectionStatus,
    DeviceDescriptor,
    FeedApiKeyResult,
    NetworkDescriptor,
    Sample,
    Scale,
    SpeckConfig,
    UploadUrl,
    WifiStatus,
)
from speckctl.core.speck import (
    DEFAULT_LOGGING_INTERVAL_SECS,
    DELETE_SAMPLE_COMMAND,
    GET_INFO_COMMAND,
    SET_LOGGING_INTERVAL_COMMAND,
    Speck,
    require_int,
)
from speckctl.core.wifi import (
    DEFAULT_UPLOAD_URL,
    EMPTY_FEED_API_KEY,
    FEED_API_KEY_LENGTH,
    OPEN,
    WEP,
    clamp_ssid_length,
    encryption_for_id,
    is_feed_api_key,
    is_valid_encryption,
    is_valid_hex_wep_key,
    is_valid_ssid,
    signal_strength_for_rssi,
    unique_sorted_networks,
    validate_upload_url,
)
from speckctl.transports.base import HidTransport

LOGGER = logging.getLogger(__name__)

REPORT_LENGTH = 128

DEFAULT_SCAN_POLL_INTERVAL_S = 0.2
DEFAULT_SCAN_TIMEOUT_S = 15.0

NO_CHANGE = 255

DEFAULT_PALETTE = ColorPalette(name="Default", id=0)
COLORBLIND_PALETTE = ColorPalette(name="Colorblind", id=1)
PALETTES_BY_ID = {p.id: p for p in (DEFAULT_PALETTE, COLORBLIND_PALETTE)}

COUNT_SCALE = Scale(name="Count", abbreviation="c", id=0)
CONCENTRATION_SCALE = Scale(name="Concentration", abbreviation="w", id=1)
SCALES_BY_ID = {s.id: s for s in (COUNT_SCALE, CONCENTRATION_SCALE)}

CONNECTION_STATUSES = {
    0: ConnectionStatus(name="Not Connected", id=0, is_connected=False),
    1: ConnectionStatus(name="Connected", id=1, is_connected=True),
    2: ConnectionStatus(name="Error", id=2, is_connected=False),
}

GET_WIFI_STATUS_COMMAND = "w"
SET_FEED_API_KEY_COMMAND = "k"
INITIATE_WIFI_SCAN_COMMAND = "s"
GET_AVAILABLE_NETWORK_COMMAND = "n"
JOIN_NETWORK_COMMAND = "j"
GET_STORED_NETWORK_COMMAND = "t"
REMOVE_ALL_NETWORKS_COMMAND = "r"
UPLOAD_URL_COMMAND = "u"
CALIBRATION_MODE_COMMAND = "c"

# info
_SERIAL_START, _SERIAL_END = 1, 16
_HARDWARE_VERSION = 17
_PROTOCOL_VERSION = 18
_LOGGING_INTERVAL_READ = 19
_FIRMWARE_VERSION = 20
_PALETTE_READ = 21
_SCALE_READ = 22
_LOGGING_INTERVAL_WRITE = 5
_PALETTE_WRITE = 6
_SCALE_WRITE = 7

# samples
_SAMPLE_TIME = 1
_PARTICLE_CONCENTRATION = 5
_TEMPERATURE = 9
_HUMIDITY = 11
_RAW_PARTICLE_COUNT = 12
_PARTICLE_COUNT = 14

_DELETE_AT_TIME = 5
_DELETE_MODE = 9
_DELETE_RESULT = 5
_DELETE_ONE = 1
_DELETE_ALL = 255

# wifi status
_MAC_START, _MAC_END = 1, 6
_FEED_KEY_ENABLED = 7
_FEED_KEY = 8
_IS_INITIALIZED = 72
_IS_SCANNING = 73
_NUM_AVAILABLE = 74
_NUM_STORED = 75
_IS_REMOVING = 76
_IS_JOINING = 77
_CONNECTION_STATUS = 78
_IP_ADDRESS = 79

_FEED_KEY_ENABLED_WRITE = 5
_FEED_KEY_WRITE = 6
_FEED_KEY_ENABLED_READ = 1
_FEED_KEY_READ = 2

_FLAG = 1

_AVAILABLE_IS_VALID = 1
_AVAILABLE_ENCRYPTION = 2
_AVAILABLE_SSID_LENGTH = 3
_AVAILABLE_SSID = 4
_AVAILABLE_SIGNAL = 36

_JOIN_ENCRYPTION = 5
_JOIN_SSID_LENGTH = 6
_JOIN_KEY_LENGTH = 7
_JOIN_SSID = 8
_JOIN_KEY = 40

_STORED_INDEX = 5
_STORED_ENCRYPTION = 1
_STORED_SSID_LENGTH = 2
_STORED_SSID = 3

_URL_MODE = 5
_URL_READ_MODE = 0
_URL_WRITE_MODE = 1
_URL_PORT_LENGTH_WRITE = 6
_URL_HOST_LENGTH_WRITE = 7
_URL_PATH_LENGTH_WRITE = 8
_URL_PORT_WRITE = 9
_URL_HOST_WRITE = 14
_URL_PATH_WRITE = 54
_URL_PORT_LENGTH_READ = 1
_URL_HOST_LENGTH_READ = 2
_URL_PATH_LENGTH_READ = 3
_URL_PORT_READ = 4
_URL_HOST_READ = 9
_URL_PATH_READ = 49


class WifiSpeck(Speck):
    kind = WIFI
    report_length = REPORT_LENGTH

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        transport: HidTransport,
        *,
        command_ids: CommandIdGenerator | None = None,
        scan_poll_interval_s: float = DEFAULT_SCAN_POLL_INTERVAL_S,
        scan_timeout_s: float = DEFAULT_SCAN_TIMEOUT_S,
    ) -> None:
        super().__init__(descriptor, transport, command_ids=command_ids)
        self.scan_poll_interval_s = scan_poll_interval_s
        self.scan_timeout_s = scan_timeout_s

    async def _read_config_from_device(self) -> SpeckConfig:
        command = self._create_command(GET_INFO_COMMAND)
        command.write_uint8(_PALETTE_WRITE, NO_CHANGE)
        command.write_uint8(_SCALE_WRITE, NO_CHANGE)
        response = await self._send(command)
        return SpeckConfig(
            id=response.hex_slice(_SERIAL_START, _SERIAL_END),
            protocol_version=response.uint8(_PROTOCOL_VERSION),
            logging_interval_secs=response.uint8(_LOGGING_INTERVAL_READ),
            firmware_version=response.uint8(_FIRMWARE_VERSION),
            hardware_version=response.uint8(_HARDWARE_VERSION),
            color_palette=PALETTES_BY_ID.get(response.uint8(_PALETTE_READ)),
            scale=SCALES_BY_ID.get(response.uint8(_SCALE_READ)),
        )

    async def _read_data_sample(self, command: str) -> Sample | None:
        response = await self._send(self._create_command(command))
        sample_time = response.uint32(_SAMPLE_TIME)
        if sample_time == 0:
            return None

        caps = self.get_capabilities()
        return Sample(
            sample_time_secs=sample_time,
            raw_particle_count=response.uint16(_RAW_PARTICLE_COUNT),
            temperature=response.int16(_TEMPERATURE) / 10.0,
            particle_count=response.uint32(_PARTICLE_COUNT),
            particle_concentration=response.uint32(_PARTICLE_CONCENTRATION) / 10.0,
            humidity=response.uint8(_HUMIDITY) if caps.has_humidity_sensor else None,
        )

    async def _write_logging_interval(self, seconds: int) -> bool:
        command = self._create_command(SET_LOGGING_INTERVAL_COMMAND)
        command.write_uint8(_LOGGING_INTERVAL_WRITE, seconds)
        command.write_uint8(_PALETTE_WRITE, NO_CHANGE)
        command.write_uint8(_SCALE_WRITE, NO_CHANGE)
        response = await self._send(command)
        actual = response.uint8(_LOGGING_INTERVAL_READ)
        if actual != seconds:
            LOGGER.warning("Logging interval not applied: expected %d, device reports %d", seconds, actual)
            return False
        return True

    async def _delete_one_sample(self, timestamp: int) -> bool:
        return await self._delete_samples(timestamp, delete_all=False)

    async def delete_all_samples(self) -> bool:
        caps = await self._loaded_capabilities()
        if not caps.can_delete_all_samples:
            raise UnsupportedOperationError("This Speck cannot delete all samples")
        return await self._delete_samples(0, delete_all=True)

    async def _delete_samples(self, timestamp: int, *, delete_all: bool) -> bool:
        command = self._create_command(DELETE_SAMPLE_COMMAND)
        if not delete_all:
            command.write_uint32(_DELETE_AT_TIME, timestamp)
        command.write_uint8(_DELETE_MODE, _DELETE_ALL if delete_all else _DELETE_ONE)
        response = await self._send(command)
        return response.uint8(_DELETE_RESULT) == 1

    async def set_palette(self, palette_id: int) -> bool:
        caps = await self._loaded_capabilities()
        if not caps.can_select_palette:
            raise UnsupportedOperationError("This Speck does not support palette selection")
        if palette_id not in PALETTES_BY_ID:
            raise ValidationError(f"Invalid palette ID {palette_id!r}")
        return await self._write_display_setting(palette=palette_id, scale=NO_CHANGE)

    async def set_scale(self, scale_id: int) -> bool:
        caps = await self._loaded_capabilities()
        if not caps.can_select_scale:
            raise UnsupportedOperationError("This Speck does not support scale selection")
        if scale_id not in SCALES_BY_ID:
            raise ValidationError(f"Invalid scale ID {scale_id!r}")
        return await self._write_display_setting(palette=NO_CHANGE, scale=scale_id)

    async def toggle_palette(self) -> SpeckConfig:
        config = await self.get_config()
        current = config.color_palette.id if config.color_palette is not None else None
        await self.set_palette(COLORBLIND_PALETTE.id if current == DEFAULT_PALETTE.id else DEFAULT_PALETTE.id)
        return await self.get_config()

    async def toggle_scale(self) -> SpeckConfig:
        config = await self.get_config()
        current = config.scale.id if config.scale is not None else None
        await self.set_scale(CONCENTRATION_SCALE.id if current == COUNT_SCALE.id else COUNT_SCALE.id)
        return await self.get_config()

    async def _write_display_setting(self, *, palette: int, scale: int) -> bool:
        command = self._create_command(GET_INFO_COMMAND)
        command.write_uint8(_PALETTE_WRITE, palette)
        command.write_uint8(_SCALE_WRITE, scale)
        response = await self._send(command)

        if palette != NO_CHANGE and response.uint8(_PALETTE_READ) != palette:
            LOGGER.warning("Palette not applied: requested %d, device reports %d", palette, response.uint8(_PALETTE_READ))
            return False
        if scale != NO_CHANGE and response.uint8(_SCALE_READ) != scale:
            LOGGER.warning("Scale not applied: requested %d, device reports %d", scale, response.uint8(_SCALE_READ))
            return False

        config = await self.get_config(force_reload=True)
        if palette != NO_CHANGE:
            return config.color_palette is not None and config.color_palette.id == palette
        return config.scale is not None and config.scale.id == scale

    async def get_wifi_status(self) -> WifiStatus:
        self._require_connection()
        response = await self._send(self._create_command(GET_WIFI_STATUS_COMMAND))
        status = CONNECTION_STATUSES.get(response.uint8(_CONNECTION_STATUS))
        ip_address = None
        if status is not None and status.is_connected:
            ip_address = ".".join(str(b) for b in response.data[_IP_ADDRESS : _IP_ADDRESS + 4])
        return WifiStatus(
            mac_address=response.hex_slice(_MAC_START, _MAC_END),
            is_feed_api_key_enabled=response.uint8(_FEED_KEY_ENABLED) == 1,
            feed_api_key=response.read_ascii(_FEED_KEY, FEED_API_KEY_LENGTH),
            is_initialized=response.uint8(_IS_INITIALIZED) == 1,
            is_scanning=response.uint8(_IS_SCANNING) == 1,
            num_available_networks=response.uint8(_NUM_AVAILABLE),
            num_stored_networks=response.uint8(_NUM_STORED),
            is_removing_stored_networks=response.uint8(_IS_REMOVING) == 1,
            is_joining=response.uint8(_IS_JOINING) == 1,
            connection_status=status,
            ip_address=ip_address,
        )

    async def set_feed_api_key(self, key: str, enabled: bool = True) -> FeedApiKeyResult:
        self._require_connection()
        if not is_feed_api_key(key):
            raise ValidationError("Feed API key must be exactly 64 hex characters")
        command = self._create_command(SET_FEED_API_KEY_COMMAND)
        command.write_uint8(_FEED_KEY_ENABLED_WRITE, 1 if enabled else 0)
        command.write_text(_FEED_KEY_WRITE, key)
        response = await self._send(command)
        echoed = response.read_ascii(_FEED_KEY_READ, FEED_API_KEY_LENGTH)
        return FeedApiKeyResult(
            success=echoed == key,
            is_enabled=response.uint8(_FEED_KEY_ENABLED_READ) == 1,
            key=echoed,
        )

    async def clear_feed_api_key(self) -> FeedApiKeyResult:
        return await self.set_feed_api_key(EMPTY_FEED_API_KEY, enabled=False)

    async def initiate_wifi_scan(self) -> bool:
        self._require_connection()
        response = await self._send(self._create_command(INITIATE_WIFI_SCAN_COMMAND))
        return response.uint8(_FLAG) == 1

    async def get_available_networks(self, expected_count: int) -> list[NetworkDescriptor]:
        self._require_connection()
        expected = require_int(expected_count, name="Expected network count")
        if expected <= 0:
            return []

        networks: list[NetworkDescriptor] = []
        for _ in range(expected):
            network = await self._read_available_network()
            if network is None:
                break
            networks.append(network)

        result = unique_sorted_networks(networks)
        if len(result) != expected:
            LOGGER.warning("Expected %d available networks, found %d unique", expected, len(result))
        return result

    async def scan_and_get_available_networks(self) -> list[NetworkDescriptor]:
        if not await self.initiate_wifi_scan():
            raise WifiScanError("Speck did not start scanning for Wi-Fi networks")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.scan_timeout_s
        while True:
            await asyncio.sleep(self.scan_poll_interval_s)
            status = await self.get_wifi_status()
            if not status.is_scanning:
                return await self.get_available_networks(status.num_available_networks)
            if loop.time() > deadline:
                raise ScanTimeoutError("Timeout while trying to scan for Wi-Fi networks")

    async def join_network(self, network: NetworkDescriptor) -> bool:
        self._require_connection()
        if network is None or not is_valid_ssid(network.ssid):
            raise ValidationError("Invalid Wi-Fi SSID")
        if not is_valid_encryption(network.encryption, network.key):
            raise ValidationError("Invalid Wi-Fi encryption key")

        encryption = network.encryption
        ssid = network.ssid.encode("utf-8")
        if encryption.id == OPEN.id or not network.key:
            key = b""
        elif encryption.id == WEP.id and is_valid_hex_wep_key(network.key):
            key = bytes.fromhex(network.key)
        else:
            key = network.key.encode("ascii")

        command = self._create_command(JOIN_NETWORK_COMMAND)
        command.write_uint8(_JOIN_ENCRYPTION, encryption.id)
        command.write_uint8(_JOIN_SSID_LENGTH, len(ssid))
        command.write_uint8(_JOIN_KEY_LENGTH, len(key))
        command.write_bytes(_JOIN_SSID, ssid)
        if key:
            command.write_bytes(_JOIN_KEY, key)
        response = await self._send(command)
        return response.uint8(_FLAG) == 1

    async def get_stored_networks(self) -> list[NetworkDescriptor]:
        status = await self.get_wifi_status()
        networks: list[NetworkDescriptor] = []
        for index in range(status.num_stored_networks):
            network = await self._read_stored_network(index)
            if network is not None:
                networks.append(network)
        return networks

    async def get_stored_network(self, index: int) -> NetworkDescriptor | None:
        self._require_connection()
        network_index = require_int(index, name="Stored network index")
        status = await self.get_wifi_status()
        if status.num_stored_networks <= 0:
            raise ValidationError("No stored networks.")
        if not 0 <= network_index < status.num_stored_networks:
            raise ValidationError(
                f"Invalid stored network index [{network_index}]. "
                f"Must be in the range [0,{status.num_stored_networks - 1}]"
            )
        return await self._read_stored_network(network_index)

    async def remove_all_stored_networks(self) -> bool:
        self._require_connection()
        response = await self._send(self._create_command(REMOVE_ALL_NETWORKS_COMMAND))
        return response.uint8(_FLAG) == 1

    async def _read_available_network(self) -> NetworkDescriptor | None:
        response = await self._send(self._create_command(GET_AVAILABLE_NETWORK_COMMAND))
        if response.uint8(_AVAILABLE_IS_VALID) != 1:
            return None
        ssid_length = clamp_ssid_length(response.uint8(_AVAILABLE_SSID_LENGTH))
        if ssid_length == 0:
            return None
        rssi = response.uint8(_AVAILABLE_SIGNAL) - 128
        return NetworkDescriptor(
            ssid=response.read_ascii(_AVAILABLE_SSID, ssid_length),
            encryption=encryption_for_id(response.uint8(_AVAILABLE_ENCRYPTION)),
            rssi=rssi,
            signal_strength=signal_strength_for_rssi(rssi),
        )

    async def _read_stored_network(self, index: int) -> NetworkDescriptor | None:
        command = self._create_command(GET_STORED_NETWORK_COMMAND)
        command.write_uint8(_STORED_INDEX, index)
        response = await self._send(command)
        ssid_length = clamp_ssid_length(response.uint8(_STORED_SSID_LENGTH))
        if ssid_length == 0:
            return None
        return NetworkDescriptor(
            ssid=response.read_ascii(_STORED_SSID, ssid_length),
            encryption=encryption_for_id(response.uint8(_STORED_ENCRYPTION)),
        )

    async def get_upload_url(self) -> UploadUrl:
        self._require_connection()
        command = self._create_command(UPLOAD_URL_COMMAND)
        command.write_uint8(_URL_MODE, _URL_READ_MODE)
        return _decode_upload_url(await self._send(command))

    async def set_upload_url(self, url: UploadUrl) -> UploadUrl:
        self._require_connection()
        host, port, path = validate_upload_url(url)
        caps = await self._loaded_capabilities()
        if not caps.can_mutate_upload_url:
            raise UnsupportedOperationError("The upload URL for this Speck cannot be modified.")

        command = self._create_command(UPLOAD_URL_COMMAND)
        command.write_uint8(_URL_MODE, _URL_WRITE_MODE)
        command.write_uint8(_URL_PORT_LENGTH_WRITE, len(port))
        command.write_uint8(_URL_HOST_LENGTH_WRITE, len(host))
        command.write_uint8(_URL_PATH_LENGTH_WRITE, len(path))
        command.write_text(_URL_PORT_WRITE, port)
        command.write_text(_URL_HOST_WRITE, host)
        command.write_text(_URL_PATH_WRITE, path)
        return _decode_upload_url(await self._send(command))

    async def put_in_calibration_mode(self) -> bool:
        caps = await self._loaded_capabilities()
        if not caps.has_calibration_mode:
            raise UnsupportedOperationError("This Speck has no calibration mode")
        response = await self._send(self._create_command(CALIBRATION_MODE_COMMAND))
        return response.uint8(_FLAG) == 1

    async def factory_reset(self, on_progress: Callable[[int], None] | None = None) -> None:
        """Restore every user-changeable setting and erase stored data.

        All steps run even when earlier ones fail. ``on_progress`` receives 0
        before the first step and the rounded completion percentage after each
        one. Raises :class:`FactoryResetError` listing every failed step.
        """
        self._require_connection()
        steps: list[tuple[str, Callable[[], Awaitable[bool]]]] = [
            ("Failed to reset the sample interval.", self._reset_logging_interval),
            ("Failed to reset the palette.", self._reset_palette),
            ("Failed to reset the data sample units.", self._reset_scale),
            ("Failed to erase the upload configuration settings.", self._reset_feed_api_key),
            ("Failed to erase the wi-fi configuration.", self.remove_all_stored_networks),
            ("Failed to erase all data samples.", self.delete_all_samples),
            ("Failed to reset the upload URL.", self._reset_upload_url),
        ]

        errors: list[str] = []
        report = on_progress or (lambda percentage: None)
        report(0)
        for completed, (message, step) in enumerate(steps, start=1):
            try:
                succeeded = await step()
            except SpeckError as exc:
                LOGGER.warning("%s %s", message, exc)
                succeeded = False
            else:
                if not succeeded:
                    LOGGER.warning(message)
            if not succeeded:
                errors.append(message)
            report(round(100 * completed / len(steps)))

        if errors:
            raise FactoryResetError(errors)

    async def _reset_logging_interval(self) -> bool:
        return await self.set_logging_interval(DEFAULT_LOGGING_INTERVAL_SECS)

    async def _reset_palette(self) -> bool:
        return await self.set_palette(DEFAULT_PALETTE.id)

    async def _reset_scale(self) -> bool:
        return await self.set_scale(COUNT_SCALE.id)

    async def _reset_feed_api_key(self) -> bool:
        result = await self.clear_feed_api_key()
        return result.success and not result.is_enabled

    async def _reset_upload_url(self) -> bool:
        if not self.get_capabilities().can_mutate_upload_url:
            return True
        actual = await self.set_upload_url(DEFAULT_UPLOAD_URL)
        return (
            actual.host == DEFAULT_UPLOAD_URL.host
            and str(actual.port) == str(DEFAULT_UPLOAD_URL.port)
            and actual.path == DEFAULT_UPLOAD_URL.path
        )


def _decode_upload_url(response: Frame) -> UploadUrl:
    port_text = response.read_ascii(_URL_PORT_READ, response.uint8(_URL_PORT_LENGTH_READ))
    try:
        port: int | str = int(port_text)
    except ValueError:
        port = port_text
    return UploadUrl(
        host=response.read_ascii(_URL_HOST_READ, response.uint8(_URL_HOST_LENGTH_READ)),
        port=port,
        path=response.read_ascii(_URL_PATH_READ, response.uint8(_URL_PATH_LENGTH_READ)),
    )
