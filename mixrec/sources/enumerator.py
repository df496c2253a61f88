"""Device enumeration from FFmpeg's DirectShow device listing.

FFmpeg prints its capture-device listing to stderr and exits with a
non-zero status. This module runs that listing, parses the text into
CaptureDevice records and classifies each one as a microphone, a
system-audio (loopback) source, or unknown.
"""

import logging
import re
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from mixrec.exceptions import DeviceNotFoundError, NoDevicesAvailableError

logger = logging.getLogger(__name__)

LIST_DEVICES_ARGS = ["-hide_banner", "-f", "dshow", "-list_devices", "true", "-i", "dummy"]

AUDIO_MARKER = "(audio)"
ALTERNATIVE_NAME_MARKER = "Alternative name"

# "Name" (audio)  /  (audio) ... "Name"
_NAME_BEFORE_MARKER = re.compile(r'"(.+)"\s*\(audio\)')
_NAME_AFTER_MARKER = re.compile(r'\(audio\).*"(.+)"')

_SYSTEM_AUDIO_PATTERNS = (
    re.compile(r"stereo mix|virtual-audio-capturer|loopback|what u hear|wave out"),
    re.compile(r"speakers|headphones|realtek.*output|output"),
)
_MICROPHONE_PATTERN = re.compile(r"microphone|mic|input|webcam|usb audio")

# Stricter than classify(): no generic "output" catch-all.
_SYSTEM_AUDIO_DEFAULT_PATTERN = re.compile(
    r"stereo mix|virtual-audio-capturer|loopback|speakers|headphones"
)


class DeviceKind(Enum):
    """Advisory classification of a capture device."""

    MICROPHONE = "Microphone"
    SYSTEM_AUDIO = "System Audio"
    UNKNOWN = "Audio Device"


def classify(name: str) -> DeviceKind:
    """Classify a device by pattern-matching its lower-cased name.

    System-audio markers take priority over microphone markers, so
    "Stereo Mix (Realtek Audio Input)" is system audio.
    """
    lower = name.lower()
    for pattern in _SYSTEM_AUDIO_PATTERNS:
        if pattern.search(lower):
            return DeviceKind.SYSTEM_AUDIO
    if _MICROPHONE_PATTERN.search(lower):
        return DeviceKind.MICROPHONE
    return DeviceKind.UNKNOWN


@dataclass(frozen=True)
class CaptureDevice:
    """Represents an FFmpeg capture device.

    Attributes:
        name: Exact device name as listed by FFmpeg. Passed verbatim to
            the recording command and never reparsed.
        kind: Advisory classification derived from the name.
    """

    name: str
    kind: DeviceKind = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", classify(self.name))

    @property
    def is_microphone(self) -> bool:
        return self.kind is DeviceKind.MICROPHONE

    @property
    def is_system_audio(self) -> bool:
        return self.kind is DeviceKind.SYSTEM_AUDIO

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.name}"


def parse_device_line(line: str) -> str | None:
    """Extract the device name from a single listing line, if any."""
    if AUDIO_MARKER not in line or ALTERNATIVE_NAME_MARKER in line:
        return None
    match = _NAME_BEFORE_MARKER.search(line) or _NAME_AFTER_MARKER.search(line)
    if match is None:
        return None
    return match.group(1)


def parse_device_listing(text: str) -> list[CaptureDevice]:
    """Parse FFmpeg's device listing into devices, in emission order.

    Alternative-name lines are skipped; anything else that repeats is
    passed through unchanged.
    """
    devices = []
    for line in text.splitlines():
        name = parse_device_line(line)
        if name is not None:
            logger.debug("Found device: %s", name)
            devices.append(CaptureDevice(name))
    return devices


def guess_defaults(
    devices: list[CaptureDevice],
) -> tuple[CaptureDevice | None, CaptureDevice | None]:
    """Guess the default (microphone, system audio) pair.

    Falls back to the first device for the microphone and to the second
    (or, with a single device, the first) for system audio, so a non-empty
    list always yields two guesses. A lone device is returned for both.
    """
    mic = next((d for d in devices if d.is_microphone), None)
    system = next(
        (d for d in devices if _SYSTEM_AUDIO_DEFAULT_PATTERN.search(d.name.lower())),
        None,
    )

    if mic is None and devices:
        mic = devices[0]
    if system is None and len(devices) > 1:
        system = devices[1]
    elif system is None and devices:
        system = devices[0]

    return mic, system


class DeviceEnumerator:
    """Discovers capture devices by running FFmpeg's listing mode.

    Discovery never raises: spawn failures and timeouts are logged and
    produce an empty list. Inside a ``with`` block the first discovery is
    cached so repeated lookups do not respawn FFmpeg.

    Args:
        binary: Path to the FFmpeg executable.
        runner: Callable with subprocess.run's signature (injectable for tests).
        timeout: Seconds to wait for the listing to finish.

    Example:
        with DeviceEnumerator(binary) as enumerator:
            mics = enumerator.list_microphones()
            mic, system = enumerator.default_devices()
    """

    def __init__(
        self,
        binary: Path | None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = 15.0,
    ) -> None:
        self._binary = binary
        self._runner = runner
        self._timeout = timeout
        self._cached: list[CaptureDevice] | None = None
        self._caching = False

    def __enter__(self) -> "DeviceEnumerator":
        self._caching = True
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self._caching = False
        self._cached = None

    def _read_listing(self) -> str | None:
        """Run the listing and return its stderr text, or None on failure."""
        if self._binary is None or not Path(self._binary).is_file():
            logger.error("Cannot list devices: FFmpeg binary missing (%s)", self._binary)
            return None

        command = [str(self._binary), *LIST_DEVICES_ARGS]
        logger.info("Running: %s", " ".join(command))
        try:
            # run() drains both pipes concurrently.
            result = self._runner(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error("Device listing timed out after %.1f seconds", self._timeout)
            return None
        except OSError as e:
            logger.error("Failed to run device listing: %s", e)
            return None

        # Non-zero exit is normal here: "-i dummy" is not a real input.
        stderr = result.stderr or ""
        logger.debug("FFmpeg stderr (exit %s):\n%s", result.returncode, stderr)
        return stderr

    def discover(self) -> list[CaptureDevice]:
        """List capture devices in FFmpeg's emission order (possibly empty)."""
        if self._caching and self._cached is not None:
            return list(self._cached)

        text = self._read_listing()
        devices = parse_device_listing(text) if text else []
        logger.info("Found %d audio devices", len(devices))

        if self._caching:
            self._cached = devices
        return list(devices)

    def list_microphones(self) -> list[CaptureDevice]:
        return [d for d in self.discover() if d.is_microphone]

    def list_system_audio(self) -> list[CaptureDevice]:
        return [d for d in self.discover() if d.is_system_audio]

    def default_devices(self) -> tuple[CaptureDevice | None, CaptureDevice | None]:
        """Guess (microphone, system audio) from a discovery pass."""
        return guess_defaults(self.discover())

    def find_device(self, name_or_desc: str) -> CaptureDevice:
        """Find a device by exact name, then by case-insensitive substring.

        Raises:
            NoDevicesAvailableError: If discovery found nothing.
            DeviceNotFoundError: If no device matches.
        """
        devices = self.discover()
        if not devices:
            raise NoDevicesAvailableError()

        for device in devices:
            if device.name == name_or_desc:
                return device

        search = name_or_desc.lower()
        for device in devices:
            if search in device.name.lower():
                return device
        raise DeviceNotFoundError(name_or_desc)
