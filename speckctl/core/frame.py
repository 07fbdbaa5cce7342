"""Fixed-length HID report codec shared by every Speck variant.

Every report starts with the command character and the current Unix time and
ends with a checksum byte followed by the command ID. Multi-byte integers are
big-endian.
"""

from __future__ import annotations

import logging
import random
import struct
import time

LOGGER = logging.getLogger(__name__)

REPORT_ID = 0
TIMESTAMP_OFFSET = 1
_PRINTABLE_MIN = 0x20
_PRINTABLE_MAX = 0x7E


def compute_checksum(data: bytes | bytearray) -> int:
    """Sum of every byte before the checksum slot, truncated to 8 bits."""
    return sum(data[: len(data) - 2]) & 0xFF


class CommandIdGenerator:
    """Rolling command IDs in [1, 255]; zero is never produced."""

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = random.randint(1, 255)
        if not 1 <= seed <= 255:
            raise ValueError(f"Command ID seed must be in [1, 255], got {seed}")
        self._value = seed

    def next(self) -> int:
        self._value = self._value % 255 + 1
        return self._value


class Frame:
    def __init__(self, data: bytes | bytearray) -> None:
        if len(data) < 3:
            raise ValueError(f"Report too short ({len(data)} bytes)")
        self.data = bytearray(data)

    @classmethod
    def create(cls, command: str, length: int, *, now: int | None = None) -> Frame:
        frame = cls(bytes(length))
        frame.data[0] = ord(command)
        timestamp = int(time.time()) if now is None else now
        frame.write_uint32(TIMESTAMP_OFFSET, timestamp & 0xFFFFFFFF)
        return frame

    @classmethod
    def wrap(cls, data: bytes | bytearray) -> Frame:
        return cls(data)

    def __len__(self) -> int:
        return len(self.data)

    def __bytes__(self) -> bytes:
        return bytes(self.data)

    @property
    def command(self) -> str:
        return chr(self.data[0])

    @property
    def checksum(self) -> int:
        return self.data[-2]

    @property
    def command_id(self) -> int:
        return self.data[-1]

    def seal(self, command_id: int) -> None:
        self.data[-1] = command_id & 0xFF
        self.data[-2] = compute_checksum(self.data)

    def is_checksum_valid(self) -> bool:
        return compute_checksum(self.data) == self.checksum

    def hex(self) -> str:
        return self.data.hex()

    def uint8(self, offset: int) -> int:
        return self.data[offset]

    def uint16(self, offset: int) -> int:
        return struct.unpack_from(">H", self.data, offset)[0]

    def int16(self, offset: int) -> int:
        return struct.unpack_from(">h", self.data, offset)[0]

    def uint32(self, offset: int) -> int:
        return struct.unpack_from(">I", self.data, offset)[0]

    def write_uint8(self, offset: int, value: int) -> None:
        self._check_payload_bounds(offset, 1)
        self.data[offset] = value & 0xFF

    def write_uint16(self, offset: int, value: int) -> None:
        self._check_payload_bounds(offset, 2)
        struct.pack_into(">H", self.data, offset, value)

    def write_uint32(self, offset: int, value: int) -> None:
        self._check_payload_bounds(offset, 4)
        struct.pack_into(">I", self.data, offset, value)

    def write_bytes(self, offset: int, value: bytes) -> None:
        self._check_payload_bounds(offset, len(value))
        self.data[offset : offset + len(value)] = value

    def write_text(self, offset: int, value: str) -> None:
        self.write_bytes(offset, value.encode("ascii"))

    def hex_slice(self, start: int, end_inclusive: int) -> str:
        return self.data[start : end_inclusive + 1].hex()

    def read_ascii(self, offset: int, length: int) -> str:
        """Read up to ``length`` printable ASCII characters starting at ``offset``."""
        end = min(offset + length, len(self.data))
        chars: list[str] = []
        for position in range(offset, end):
            byte = self.data[position]
            if byte < _PRINTABLE_MIN or byte > _PRINTABLE_MAX:
                LOGGER.warning(
                    "Stopped reading ASCII at offset %d: non-printable byte 0x%02x",
                    position,
                    byte,
                )
                break
            chars.append(chr(byte))
        return "".join(chars)

    def _check_payload_bounds(self, offset: int, size: int) -> None:
        # the last two bytes are reserved for the checksum and command ID
        if offset < 0 or offset + size > len(self.data) - 2:
            raise ValueError(
                f"Field of {size} bytes at offset {offset} does not fit a {len(self.data)}-byte report"
            )
