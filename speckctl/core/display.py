"""Human-friendly renderings of device identifiers."""

from __future__ import annotations


def _group(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


def format_serial_number(serial: str) -> str:
    """Group a hex serial number in fours: ``0123456789ab`` -> ``0123-4567-89ab``."""
    return "-".join(_group(serial, 4))


def format_mac_address(mac: str) -> str:
    return ":".join(_group(mac, 2))
