"""Shared device contract for every Speck variant."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any

from speckctl.core.capabilities import Capabilities, capabilities
from speckctl.core.command_queue import CommandQueue
from speckctl.core.errors import NotConnectedError, UnsupportedOperationError, ValidationError
from speckctl.core.frame import CommandIdGenerator, Frame
from speckctl.core.model import Connection, DeviceDescriptor, Sample, SpeckConfig
from speckctl.transports.base import HidTransport

LOGGER = logging.getLogger(__name__)

GET_INFO_COMMAND = "I"
SET_LOGGING_INTERVAL_COMMAND = "I"
GET_HISTORIC_SAMPLE_COMMAND = "G"
GET_CURRENT_SAMPLE_COMMAND = "S"
GET_SAMPLE_COUNT_COMMAND = "P"
DELETE_SAMPLE_COMMAND = "D"

MIN_LOGGING_INTERVAL_SECS = 1
MAX_LOGGING_INTERVAL_SECS = 255
DEFAULT_LOGGING_INTERVAL_SECS = 60

_SAMPLE_COUNT_OFFSET = 1


def require_int(value: Any, *, name: str) -> int:
    """Coerce ``value`` to an int, accepting integral strings but never bools."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{name} must be an integer, got {value!r}")


class Speck(ABC):
    """Connection, config cache, and command dispatch common to all variants.

    Every public coroutine requires an open connection and raises
    :class:`NotConnectedError` without touching the transport otherwise.
    """

    kind: str
    report_length: int

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        transport: HidTransport,
        *,
        command_ids: CommandIdGenerator | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._transport = transport
        self._command_ids = command_ids or CommandIdGenerator()
        self._connection: Connection | None = None
        self._queue: CommandQueue | None = None
        self._config: SpeckConfig | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(device_id={self._descriptor.device_id!r})"

    async def __aenter__(self) -> Speck:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    @property
    def descriptor(self) -> DeviceDescriptor:
        return self._descriptor

    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> bool:
        if self.is_connected():
            return True

        connection = await self._transport.connect(self._descriptor.device_id)
        self._connection = connection
        self._queue = CommandQueue(self._transport, connection, self._command_ids)
        try:
            await self.get_config(force_reload=True)
        except Exception:
            self._clear_state()
            await self._close_quietly(connection)
            raise
        LOGGER.debug("Connected to %r", self)
        return True

    async def disconnect(self) -> bool:
        if self._connection is None:
            return True
        connection = self._connection
        try:
            await self._transport.disconnect(connection.connection_id)
        finally:
            self._clear_state()
        LOGGER.debug("Disconnected from %r", self)
        return True

    def handle_device_removed(self, device_id: str) -> bool:
        """Drop connection state if ``device_id`` is this Speck's device."""
        if device_id != self._descriptor.device_id:
            LOGGER.debug("Ignoring removal of unrelated device %s", device_id)
            return False
        LOGGER.warning("Device %s was removed while in use", device_id)
        self._clear_state()
        return True

    async def get_config(self, force_reload: bool = False) -> SpeckConfig:
        self._require_connection()
        if force_reload or self._config is None:
            self._config = await self._read_config_from_device()
        return self._config

    def get_capabilities(self) -> Capabilities:
        config = self._config
        if config is None:
            return capabilities(self.kind)
        return capabilities(self.kind, config.protocol_version, config.hardware_version)

    async def get_current_sample(self) -> Sample | None:
        return await self._get_sample(GET_CURRENT_SAMPLE_COMMAND)

    async def get_historical_sample(self) -> Sample | None:
        return await self._get_sample(GET_HISTORIC_SAMPLE_COMMAND)

    async def get_sample_count(self) -> int:
        caps = await self._loaded_capabilities()
        if not caps.can_get_sample_count:
            raise UnsupportedOperationError("This Speck cannot report its number of samples")
        response = await self._send(self._create_command(GET_SAMPLE_COUNT_COMMAND))
        return response.uint32(_SAMPLE_COUNT_OFFSET)

    async def set_logging_interval(self, seconds: Any) -> bool:
        caps = await self._loaded_capabilities()
        if not caps.can_mutate_logging_interval:
            raise UnsupportedOperationError("This Speck does not allow changing the logging interval")
        interval = require_int(seconds, name="Logging interval")
        interval = max(MIN_LOGGING_INTERVAL_SECS, min(MAX_LOGGING_INTERVAL_SECS, interval))
        accepted = await self._write_logging_interval(interval)
        if accepted and self._config is not None:
            self._config = replace(self._config, logging_interval_secs=interval)
        return accepted

    async def delete_sample(self, timestamp: Any) -> bool:
        self._require_connection()
        sample_time = require_int(timestamp, name="Sample timestamp")
        if not 0 <= sample_time <= 0xFFFFFFFF:
            raise ValidationError(f"Sample timestamp {sample_time} is out of range")
        return await self._delete_one_sample(sample_time)

    def _create_command(self, command: str) -> Frame:
        return Frame.create(command, self.report_length)

    async def _send(self, frame: Frame) -> Frame:
        self._require_connection()
        assert self._queue is not None
        return await self._queue.enqueue(frame)

    async def _loaded_capabilities(self) -> Capabilities:
        await self.get_config()
        return self.get_capabilities()

    async def _get_sample(self, command: str) -> Sample | None:
        self._require_connection()
        sample = await self._read_data_sample(command)
        if sample is None or sample.sample_time_secs == 0:
            return None
        return sample

    def _require_connection(self) -> None:
        if self._connection is None:
            raise NotConnectedError("Not connected to a Speck")

    def _clear_state(self) -> None:
        if self._queue is not None:
            self._queue.close()
        self._queue = None
        self._connection = None
        self._config = None

    async def _close_quietly(self, connection: Connection) -> None:
        try:
            await self._transport.disconnect(connection.connection_id)
        except Exception as exc:
            LOGGER.warning("Failed to close half-open connection to %s: %s", connection.device_id, exc)

    @abstractmethod
    async def _read_config_from_device(self) -> SpeckConfig:
        raise NotImplementedError

    @abstractmethod
    async def _read_data_sample(self, command: str) -> Sample | None:
        raise NotImplementedError

    @abstractmethod
    async def _write_logging_interval(self, seconds: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def _delete_one_sample(self, timestamp: int) -> bool:
        raise NotImplementedError
