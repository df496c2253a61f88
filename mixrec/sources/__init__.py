"""Capture device discovery."""

from mixrec.sources.enumerator import (
    CaptureDevice,
    DeviceEnumerator,
    DeviceKind,
    classify,
    guess_defaults,
    parse_device_listing,
)

__all__ = [
    "CaptureDevice",
    "DeviceEnumerator",
    "DeviceKind",
    "classify",
    "guess_defaults",
    "parse_device_listing",
]
