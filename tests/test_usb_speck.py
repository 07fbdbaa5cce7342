from __future__ import annotations

import asyncio
import struct

import pytest

from fakes import FakeUsbSpeck, make_usb_speck, run
from speckctl.core.errors import (
    CommandIdMismatchError,
    NotConnectedError,
    UnsupportedOperationError,
    ValidationError,
)
from speckctl.core.usb_speck import LEGACY_PALETTE, LEGACY_SCALE


def test_connect_reads_legacy_config() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=1))
    device = transport.devices["usb-1"]

    async def scenario():
        await speck.connect()
        return await speck.get_config()

    config = run(scenario())
    assert speck.is_connected()
    assert config.protocol_version == 1
    assert config.id == "10111213141516171807"
    assert config.logging_interval_secs == 1
    assert config.firmware_version is None
    assert config.hardware_version is None
    assert config.color_palette == LEGACY_PALETTE
    assert config.scale == LEGACY_SCALE
    assert device.commands() == ["I"]


def test_protocol_two_reports_logging_interval() -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck(protocol_version=2))

    async def scenario():
        await speck.connect()
        return await speck.get_config()

    assert run(scenario()).logging_interval_secs == 5


def test_protocol_three_uses_extended_id_and_versions() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=3))

    async def scenario():
        await speck.connect()
        return await speck.get_config()

    config = run(scenario())
    assert config.id == "1011121314151617a0a1a2a3a4a5a6a7"
    assert len(config.id) == 32
    assert config.hardware_version == 7
    assert config.firmware_version == 9
    assert config.logging_interval_secs == 5
    assert transport.devices["usb-1"].commands() == ["I", "i"]


def test_first_command_uses_next_id_after_seed() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=1))
    run(speck.connect())
    assert transport.sent[0][-1] == 11
    assert transport.sent[0][0] == ord("I")


def test_legacy_sample_has_temperature_and_count() -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck(protocol_version=1))

    async def scenario():
        await speck.connect()
        return await speck.get_current_sample()

    sample = run(scenario())
    assert sample is not None
    assert sample.sample_time_secs == 1_500_000_000
    assert sample.particle_count == 1234
    assert sample.particle_concentration is None
    assert sample.temperature == 72
    assert sample.humidity == 40
    assert sample.raw_particle_count == 321


def test_current_sample_reports_concentration() -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck(protocol_version=3))

    async def scenario():
        await speck.connect()
        return await speck.get_historical_sample()

    sample = run(scenario())
    assert sample is not None
    assert sample.particle_concentration == pytest.approx(123.4)
    assert sample.particle_count is None
    assert sample.temperature is None
    assert sample.humidity == 40


def test_empty_sample_is_none() -> None:
    device = FakeUsbSpeck()
    device.sample["time"] = 0
    speck, _ = make_usb_speck(device)

    async def scenario():
        await speck.connect()
        return await speck.get_historical_sample()

    assert run(scenario()) is None


def test_operations_require_connection() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck())

    async def scenario() -> None:
        for operation in (
            speck.get_config(),
            speck.get_current_sample(),
            speck.get_historical_sample(),
            speck.get_sample_count(),
            speck.set_logging_interval(10),
            speck.delete_sample(5),
        ):
            with pytest.raises(NotConnectedError):
                await operation

    run(scenario())
    assert transport.sent == []


def test_sample_count() -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck(protocol_version=2))

    async def scenario():
        await speck.connect()
        return await speck.get_sample_count()

    assert run(scenario()) == 42


def test_sample_count_unsupported_on_protocol_one() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=1))

    async def scenario() -> None:
        await speck.connect()
        await speck.get_sample_count()

    with pytest.raises(UnsupportedOperationError):
        run(scenario())
    assert transport.devices["usb-1"].commands() == ["I"]


def test_logging_interval_is_clamped() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=3))

    async def scenario():
        await speck.connect()
        accepted = await speck.set_logging_interval(300)
        return accepted, await speck.get_config()

    accepted, config = run(scenario())
    assert accepted is True
    assert config.logging_interval_secs == 255
    assert transport.sent[-1][5] == 255


def test_logging_interval_below_minimum_is_clamped() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=2))

    async def scenario():
        await speck.connect()
        return await speck.set_logging_interval("0")

    assert run(scenario()) is True
    assert transport.sent[-1][5] == 1


@pytest.mark.parametrize("value", [True, "abc", 2.5, None])
def test_logging_interval_rejects_non_integers(value) -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=3))

    async def scenario() -> None:
        await speck.connect()
        await speck.set_logging_interval(value)

    with pytest.raises(ValidationError):
        run(scenario())
    assert [chr(r[0]) for r in transport.sent] == ["I", "i"]


def test_logging_interval_unsupported_on_protocol_one() -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck(protocol_version=1))

    async def scenario() -> None:
        await speck.connect()
        await speck.set_logging_interval(10)

    with pytest.raises(UnsupportedOperationError):
        run(scenario())


def test_ignored_logging_interval_is_reported() -> None:
    device = FakeUsbSpeck(protocol_version=3)
    speck, _ = make_usb_speck(device)

    async def scenario():
        await speck.connect()
        device.handlers["I"] = lambda request, response: response.__setitem__(12, 5)
        accepted = await speck.set_logging_interval(20)
        return accepted, await speck.get_config()

    accepted, config = run(scenario())
    assert accepted is False
    assert config.logging_interval_secs == 5


def test_delete_sample() -> None:
    device = FakeUsbSpeck()
    speck, transport = make_usb_speck(device)

    async def scenario():
        await speck.connect()
        deleted = await speck.delete_sample(1_500_000_000)
        device.delete_result = 0
        return deleted, await speck.delete_sample("1500000001")

    assert run(scenario()) == (True, False)
    assert struct.unpack_from(">I", transport.sent[-2], 5)[0] == 1_500_000_000
    assert struct.unpack_from(">I", transport.sent[-1], 5)[0] == 1_500_000_001


@pytest.mark.parametrize("timestamp", [-1, 0x1_0000_0000, "later"])
def test_delete_sample_validates_timestamp(timestamp) -> None:
    speck, _ = make_usb_speck(FakeUsbSpeck())

    async def scenario() -> None:
        await speck.connect()
        await speck.delete_sample(timestamp)

    with pytest.raises(ValidationError):
        run(scenario())


def test_concurrent_operations_are_serialized() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck(protocol_version=3))

    async def scenario():
        await speck.connect()
        return await asyncio.gather(speck.get_current_sample(), speck.get_sample_count())

    sample, count = run(scenario())
    assert sample is not None
    assert count == 42
    assert [chr(r[0]) for r in transport.sent[2:]] == ["S", "P"]


def test_connect_failure_leaves_speck_disconnected() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck())

    def wrong_id(data: bytes) -> bytes:
        tampered = bytearray(data)
        tampered[-1] ^= 0xFF
        return bytes(tampered)

    transport.tampers = [wrong_id]

    with pytest.raises(CommandIdMismatchError):
        run(speck.connect())
    assert not speck.is_connected()
    assert transport.disconnected == [1]
    assert transport.connections == {}


def test_disconnect_closes_transport_connection() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck())

    async def scenario() -> None:
        async with speck:
            assert speck.is_connected()

    run(scenario())
    assert not speck.is_connected()
    assert transport.disconnected == [1]
    assert run(speck.disconnect()) is True


def test_device_removal_drops_connection() -> None:
    speck, transport = make_usb_speck(FakeUsbSpeck())
    run(speck.connect())

    assert speck.handle_device_removed("some-other-device") is False
    assert speck.is_connected()

    assert speck.handle_device_removed("usb-1") is True
    assert not speck.is_connected()
    with pytest.raises(NotConnectedError):
        run(speck.get_current_sample())
