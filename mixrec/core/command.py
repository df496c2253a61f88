"""FFmpeg argument construction for a recording."""

import shlex
import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path

from mixrec.config import EncoderConfig, validate_gain
from mixrec.core.mixer import FilterGraphMixer, format_gain
from mixrec.sources.enumerator import CaptureDevice


def _device_name(device: CaptureDevice | str) -> str:
    return device.name if isinstance(device, CaptureDevice) else device


def build_arguments(
    output_path: Path | str,
    devices: Sequence[CaptureDevice | str],
    gains: Sequence[float],
    encoder: EncoderConfig | None = None,
    mixer: FilterGraphMixer | None = None,
) -> list[str]:
    """Build the FFmpeg argument list recording devices into output_path.

    Each device name becomes one ``audio=<name>`` argument exactly as
    discovered. The list is handed to the process without a shell, so
    names containing spaces, quotes or parentheses stay a single token.

    Args:
        output_path: Destination file, overwritten without prompting.
        devices: Selected devices in input order.
        gains: One gain per device.
        encoder: Output encoding policy.
        mixer: Filter-graph builder used when more than one device is selected.

    Raises:
        ValueError: If devices is empty, the lengths differ, or a gain is
            outside [0.0, 2.0].
    """
    if not devices:
        raise ValueError("At least one device is required")
    if len(devices) != len(gains):
        raise ValueError(f"Got {len(devices)} devices but {len(gains)} gains")
    for gain in gains:
        validate_gain(gain)

    encoder = encoder or EncoderConfig()
    args = ["-y"]

    for device in devices:
        args.extend(["-f", encoder.capture_format, "-i", f"audio={_device_name(device)}"])

    if len(devices) > 1:
        graph = (mixer or FilterGraphMixer()).build(list(gains))
        args.extend(["-filter_complex", graph])
    elif gains[0] != 1.0:
        args.extend(["-af", f"volume={format_gain(gains[0])}"])

    args.extend(
        [
            "-ac", str(encoder.channels),
            "-ar", str(encoder.sample_rate),
            "-c:a", encoder.codec,
            "-b:a", encoder.bitrate,
            str(output_path),
        ]
    )
    return args


def format_command(binary: Path | str, args: Sequence[str]) -> str:
    """Render a command line for logs, quoted for the host platform's shell."""
    command = [str(binary), *args]
    if sys.platform == "win32":
        return subprocess.list2cmdline(command)
    return shlex.join(command)
