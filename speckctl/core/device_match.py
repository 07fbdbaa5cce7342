"""Descriptor-to-profile matching."""

from __future__ import annotations

from speckctl.core.model import DeviceDescriptor, DeviceProfile


def profile_for_descriptor(
    descriptor: DeviceDescriptor,
    profiles: dict[str, DeviceProfile],
) -> DeviceProfile | None:
    """Return the first profile listing the descriptor's vendor/product pair."""
    for profile in profiles.values():
        for usb_id in profile.usb_ids:
            if usb_id.vendor_id == descriptor.vendor_id and usb_id.product_id == descriptor.product_id:
                return profile
    return None
