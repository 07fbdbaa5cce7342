"""Serialized request/response dispatch over a HID connection."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from speckctl.core.errors import (
    ChecksumMismatchError,
    CommandIdMismatchError,
    NoDataError,
    NotConnectedError,
    ProtocolMismatchError,
    TransportError,
)
from speckctl.core.frame import REPORT_ID, CommandIdGenerator, Frame, compute_checksum
from speckctl.core.model import Connection
from speckctl.transports.base import HidTransport

LOGGER = logging.getLogger(__name__)


@dataclass
class CommandQueueItem:
    frame: Frame
    future: asyncio.Future[Frame]
    enqueue_time: float


class CommandQueue:
    """FIFO of pending commands with at most one exchange in flight.

    Results are delivered in enqueue order. A failed exchange rejects only its
    own caller; the next queued command is dispatched regardless.
    """

    def __init__(
        self,
        transport: HidTransport,
        connection: Connection,
        command_ids: CommandIdGenerator | None = None,
    ) -> None:
        self._transport = transport
        self._connection = connection
        self._command_ids = command_ids or CommandIdGenerator()
        self._items: deque[CommandQueueItem] = deque()
        self._in_flight: CommandQueueItem | None = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    async def enqueue(self, frame: Frame) -> Frame:
        if self._closed:
            raise NotConnectedError("Command queue is closed")
        frame.seal(self._command_ids.next())
        loop = asyncio.get_running_loop()
        item = CommandQueueItem(frame=frame, future=loop.create_future(), enqueue_time=loop.time())
        self._items.append(item)
        if len(self._items) == 1:
            self._task = asyncio.create_task(self._dispatch())
        return await item.future

    def close(self) -> None:
        """Reject every command that has not started; the in-flight one completes."""
        self._closed = True
        pending = [item for item in self._items if item is not self._in_flight]
        self._items = deque([self._in_flight]) if self._in_flight is not None else deque()
        for item in pending:
            if not item.future.done():
                item.future.set_exception(NotConnectedError("Disconnected before command was sent"))

    async def _dispatch(self) -> None:
        while self._items:
            item = self._items[0]
            self._in_flight = item
            try:
                response = await self._exchange(item.frame)
            except Exception as exc:  # delivered to the waiting caller
                if not item.future.done():
                    item.future.set_exception(exc)
            else:
                if not item.future.done():
                    item.future.set_result(response)
            finally:
                self._in_flight = None
                if self._items and self._items[0] is item:
                    self._items.popleft()

    async def _exchange(self, request: Frame) -> Frame:
        connection_id = self._connection.connection_id
        LOGGER.debug("Sending command '%s' id=%d: %s", request.command, request.command_id, request.hex())
        try:
            await self._transport.send(connection_id, REPORT_ID, bytes(request))
            _, data = await self._transport.receive(connection_id)
        except TransportError as exc:
            LOGGER.error("Transport failure during command '%s': %s", request.command, exc)
            raise

        if not data:
            raise NoDataError("Failed to read response: no data")
        if len(data) != len(request):
            raise ProtocolMismatchError(
                f"Failed to read response: expected {len(request)} bytes, got {len(data)}"
            )

        response = Frame.wrap(data)
        LOGGER.debug("Received response id=%d: %s", response.command_id, response.hex())
        if response.command_id != request.command_id:
            raise CommandIdMismatchError(expected=request.command_id, actual=response.command_id)
        if not response.is_checksum_valid():
            raise ChecksumMismatchError(expected=compute_checksum(response.data), actual=response.checksum)
        return response
