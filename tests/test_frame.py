from __future__ import annotations

import logging

import pytest

from speckctl.core.frame import CommandIdGenerator, Frame, compute_checksum


def test_create_lays_out_command_and_time() -> None:
    frame = Frame.create("S", 16, now=0x01020304)
    assert len(frame) == 16
    assert frame.command == "S"
    assert bytes(frame)[1:5] == bytes([1, 2, 3, 4])
    assert frame.uint32(1) == 0x01020304


def test_seal_writes_command_id_then_checksum() -> None:
    frame = Frame.create("I", 16, now=1000)
    frame.write_uint8(5, 30)
    frame.seal(77)
    data = bytes(frame)
    assert data[15] == 77
    assert data[14] == sum(data[:14]) & 0xFF
    assert frame.is_checksum_valid()


def test_checksum_round_trip_recovers_fields() -> None:
    frame = Frame.create("u", 128, now=1_700_000_000)
    frame.write_uint16(9, 0xBEEF)
    frame.write_uint32(20, 123456)
    frame.write_text(40, "speck")
    frame.seal(255)

    decoded = Frame.wrap(bytes(frame))
    assert decoded.is_checksum_valid()
    assert decoded.checksum == compute_checksum(decoded.data)
    assert decoded.uint16(9) == 0xBEEF
    assert decoded.uint32(20) == 123456
    assert decoded.read_ascii(40, 5) == "speck"
    assert decoded.command_id == 255


def test_corrupted_byte_invalidates_checksum() -> None:
    frame = Frame.create("S", 16, now=5)
    frame.seal(3)
    frame.data[6] ^= 0xFF
    assert not frame.is_checksum_valid()


def test_int16_is_signed_big_endian() -> None:
    frame = Frame.wrap(bytes([0, 0xFF, 0x85]) + bytes(13))
    assert frame.int16(1) == -123
    assert frame.uint16(1) == 0xFF85


def test_read_ascii_stops_at_non_printable(caplog: pytest.LogCaptureFixture) -> None:
    frame = Frame.wrap(b"\x00abc\x01def" + bytes(7))
    with caplog.at_level(logging.WARNING):
        assert frame.read_ascii(1, 7) == "abc"
    assert "non-printable" in caplog.text


def test_read_ascii_never_reads_past_the_end() -> None:
    frame = Frame.wrap(b"x" * 16)
    assert frame.read_ascii(10, 50) == "x" * 6


def test_hex_slice_is_inclusive() -> None:
    frame = Frame.wrap(bytes(range(16)))
    assert frame.hex_slice(1, 3) == "010203"


def test_writes_cannot_touch_trailer() -> None:
    frame = Frame.create("j", 16)
    with pytest.raises(ValueError):
        frame.write_bytes(12, b"abc")


def test_command_ids_follow_seeded_sequence() -> None:
    seed = 250
    generator = CommandIdGenerator(seed=seed)
    ids = [generator.next() for _ in range(600)]
    assert ids == [((seed + k - 1) % 255) + 1 for k in range(1, 601)]
    assert 0 not in ids
    assert set(ids) == set(range(1, 256))


def test_command_ids_wrap_from_255_to_1() -> None:
    generator = CommandIdGenerator(seed=254)
    assert [generator.next() for _ in range(3)] == [255, 1, 2]


def test_random_seed_is_in_range() -> None:
    for _ in range(50):
        assert 1 <= CommandIdGenerator().next() <= 255


def test_invalid_seed_rejected() -> None:
    with pytest.raises(ValueError):
        CommandIdGenerator(seed=0)
