"""Speck variant for the original 16-byte USB-only devices (protocol versions 1 to 3)."""

from __future__ import annotations

import logging

from speckctl.core.capabilities import USB
from speckctl.core.model import ColorPalette, Sample, Scale, SpeckConfig
from speckctl.core.speck import (
    DELETE_SAMPLE_COMMAND,
    GET_INFO_COMMAND,
    SET_LOGGING_INTERVAL_COMMAND,
    Speck,
)

LOGGER = logging.getLogger(__name__)

REPORT_LENGTH = 16

GET_EXTENDED_INFO_COMMAND = "i"

LEGACY_PALETTE = ColorPalette(name="Legacy", id=None)
LEGACY_SCALE = Scale(name="Legacy Concentration", abbreviation="", id=None)

_SERIAL_START = 1
_SERIAL_END_PROTOCOL_1_AND_2 = 10
_SERIAL_END_PROTOCOL_3 = 8
_HARDWARE_VERSION = 10
_PROTOCOL_VERSION = 11
_LOGGING_INTERVAL_READ = 12
_FIRMWARE_VERSION = 13
_LOGGING_INTERVAL_WRITE = 5
_FIXED_LOGGING_INTERVAL_SECS = 1

_SAMPLE_TIME = 1
_COUNT_OR_CONCENTRATION = 5
_TEMPERATURE = 9
_HUMIDITY = 11
_RAW_PARTICLE_COUNT = 12

_DELETE_AT_TIME = 5
_DELETE_RESULT = 5


class UsbSpeck(Speck):
    kind = USB
    report_length = REPORT_LENGTH

    async def _read_config_from_device(self) -> SpeckConfig:
        response = await self._send(self._create_command(GET_INFO_COMMAND))
        protocol_version = response.uint8(_PROTOCOL_VERSION)

        if protocol_version < 3:
            logging_interval = response.uint8(_LOGGING_INTERVAL_READ)
            if protocol_version < 2:
                logging_interval = _FIXED_LOGGING_INTERVAL_SECS
            return SpeckConfig(
                id=response.hex_slice(_SERIAL_START, _SERIAL_END_PROTOCOL_1_AND_2),
                protocol_version=protocol_version,
                logging_interval_secs=logging_interval,
                color_palette=LEGACY_PALETTE,
                scale=LEGACY_SCALE,
            )

        extended = await self._send(self._create_command(GET_EXTENDED_INFO_COMMAND))
        serial = response.hex_slice(_SERIAL_START, _SERIAL_END_PROTOCOL_3)
        serial += extended.hex_slice(_SERIAL_START, _SERIAL_END_PROTOCOL_3)
        return SpeckConfig(
            id=serial,
            protocol_version=protocol_version,
            logging_interval_secs=response.uint8(_LOGGING_INTERVAL_READ),
            firmware_version=response.uint8(_FIRMWARE_VERSION),
            hardware_version=response.uint8(_HARDWARE_VERSION),
            color_palette=LEGACY_PALETTE,
            scale=LEGACY_SCALE,
        )

    async def _read_data_sample(self, command: str) -> Sample | None:
        response = await self._send(self._create_command(command))
        sample_time = response.uint32(_SAMPLE_TIME)
        if sample_time == 0:
            return None

        caps = self.get_capabilities()
        count_or_concentration = response.uint32(_COUNT_OR_CONCENTRATION)
        return Sample(
            sample_time_secs=sample_time,
            raw_particle_count=response.uint16(_RAW_PARTICLE_COUNT),
            humidity=response.uint8(_HUMIDITY) if caps.has_humidity_sensor else None,
            temperature=response.uint16(_TEMPERATURE) if caps.has_temperature_sensor else None,
            particle_count=count_or_concentration if caps.has_particle_count else None,
            particle_concentration=None if caps.has_particle_count else count_or_concentration / 10.0,
        )

    async def _write_logging_interval(self, seconds: int) -> bool:
        command = self._create_command(SET_LOGGING_INTERVAL_COMMAND)
        command.write_uint8(_LOGGING_INTERVAL_WRITE, seconds)
        response = await self._send(command)
        actual = response.uint8(_LOGGING_INTERVAL_READ)
        if actual != seconds:
            LOGGER.warning("Logging interval not applied: expected %d, device reports %d", seconds, actual)
            return False
        return True

    async def _delete_one_sample(self, timestamp: int) -> bool:
        command = self._create_command(DELETE_SAMPLE_COMMAND)
        command.write_uint32(_DELETE_AT_TIME, timestamp)
        response = await self._send(command)
        return response.uint8(_DELETE_RESULT) == 1
