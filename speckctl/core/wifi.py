"""Wi-Fi network descriptors, validators, and signal-strength mapping."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from speckctl.core.errors import ValidationError
from speckctl.core.model import Encryption, NetworkDescriptor, SignalStrength, UploadUrl

LOGGER = logging.getLogger(__name__)

SSID_MAX_LENGTH = 32
WPA_KEY_MAX_LENGTH = 32
WEP_HEX_KEY_LENGTHS = frozenset({10, 26, 32})
WEP_ASCII_KEY_LENGTHS = frozenset({5, 13, 16})

FEED_API_KEY_LENGTH = 64
EMPTY_FEED_API_KEY = "0" * FEED_API_KEY_LENGTH

_HEX_RE = re.compile(r"^[a-f0-9]+$", re.IGNORECASE)
_FEED_API_KEY_RE = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)

OPEN = Encryption(name="Open", id=0)
WEP = Encryption(name="WEP", id=1)
WPA = Encryption(name="WPA", id=2)
WPA2 = Encryption(name="WPA2", id=3)
ENCRYPTIONS_BY_ID: dict[int, Encryption] = {e.id: e for e in (OPEN, WEP, WPA, WPA2)}

# (minimum RSSI, strength), strongest first
SIGNAL_STRENGTHS: tuple[tuple[int | None, SignalStrength], ...] = (
    (-50, SignalStrength(name="Excellent", id=0)),
    (-60, SignalStrength(name="Good", id=1)),
    (-70, SignalStrength(name="Fair", id=2)),
    (-80, SignalStrength(name="Weak", id=3)),
    (None, SignalStrength(name="Negligible", id=4)),
)

UPLOAD_URL_HOST_LENGTH = (2, 40)
UPLOAD_URL_PORT_LENGTH = (1, 5)
UPLOAD_URL_PATH_LENGTH = (0, 40)
DEFAULT_UPLOAD_URL = UploadUrl(host="esdr.cmucreatelab.org", port=80, path="/api/v1/feed")


def supported_encryptions() -> tuple[Encryption, ...]:
    return tuple(ENCRYPTIONS_BY_ID.values())


def encryption_for_id(encryption_id: int) -> Encryption | None:
    return ENCRYPTIONS_BY_ID.get(encryption_id)


def signal_strength_for_rssi(rssi: int) -> SignalStrength:
    for minimum, strength in SIGNAL_STRENGTHS:
        if minimum is None or rssi >= minimum:
            return strength
    return SIGNAL_STRENGTHS[-1][1]


def is_valid_ssid(ssid: Any) -> bool:
    return isinstance(ssid, str) and 0 < len(ssid.encode("utf-8")) <= SSID_MAX_LENGTH


def is_valid_hex_wep_key(key: Any) -> bool:
    return isinstance(key, str) and len(key) in WEP_HEX_KEY_LENGTHS and bool(_HEX_RE.match(key))


def is_valid_ascii_wep_key(key: Any) -> bool:
    return isinstance(key, str) and key.isascii() and len(key) in WEP_ASCII_KEY_LENGTHS


def is_valid_wpa_key(key: Any) -> bool:
    return isinstance(key, str) and key.isascii() and 0 < len(key) <= WPA_KEY_MAX_LENGTH


def is_valid_encryption(encryption: Encryption | None, key: str | None) -> bool:
    if encryption is None or encryption.id not in ENCRYPTIONS_BY_ID:
        return False
    if encryption.id == OPEN.id:
        return True
    if encryption.id == WEP.id:
        return is_valid_hex_wep_key(key) or is_valid_ascii_wep_key(key)
    return is_valid_wpa_key(key)


def is_valid_network_descriptor(network: NetworkDescriptor | None) -> bool:
    return (
        network is not None
        and is_valid_ssid(network.ssid)
        and is_valid_encryption(network.encryption, network.key)
    )


def is_feed_api_key(key: Any) -> bool:
    return isinstance(key, str) and bool(_FEED_API_KEY_RE.match(key))


def network_sort_key(network: NetworkDescriptor) -> tuple[int, str, int]:
    """Strongest signal first, then SSID ignoring case, then encryption ID."""
    rssi = network.rssi if network.rssi is not None else -255
    encryption_id = network.encryption.id if network.encryption is not None else 255
    return (-rssi, network.ssid.lower(), encryption_id)


def unique_sorted_networks(networks: Iterable[NetworkDescriptor]) -> list[NetworkDescriptor]:
    """Drop repeated SSIDs (first seen wins) and sort by :func:`network_sort_key`."""
    seen: set[str] = set()
    unique: list[NetworkDescriptor] = []
    for network in networks:
        if network.ssid in seen:
            LOGGER.debug("Dropping duplicate network entry for SSID %r", network.ssid)
            continue
        seen.add(network.ssid)
        unique.append(network)
    return sorted(unique, key=network_sort_key)


def clamp_ssid_length(length: int) -> int:
    """Bound a device-reported SSID length to what a report can hold."""
    clamped = min(max(length, 0), SSID_MAX_LENGTH)
    if clamped != length:
        LOGGER.warning("Device reported SSID length %d; clamping to %d", length, clamped)
    return clamped


def validate_upload_url(url: UploadUrl) -> tuple[str, str, str]:
    """Return ``(host, port, path)`` strings ready to write, or raise ``ValidationError``."""
    if not isinstance(url.host, str) or not isinstance(url.path, str):
        raise ValidationError("Upload URL host and path must be strings")
    try:
        port = str(int(url.port))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid upload URL port {url.port!r}") from None

    if not (url.host.isascii() and url.path.isascii()):
        raise ValidationError("Upload URL host and path must be ASCII")

    for label, value, (low, high) in (
        ("host", url.host, UPLOAD_URL_HOST_LENGTH),
        ("port", port, UPLOAD_URL_PORT_LENGTH),
        ("path", url.path, UPLOAD_URL_PATH_LENGTH),
    ):
        if not low <= len(value) <= high:
            raise ValidationError(
                f"Invalid {label} length ({len(value)}). {label.capitalize()} string length "
                f"must be in the range [{low},{high}]"
            )
    return url.host, port, url.path
