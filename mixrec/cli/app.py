"""Command-line interface for the mixing recorder.

This module provides the main entry point and argument parsing
for the mixrec CLI tool.
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from types import FrameType

from mixrec import __version__
from mixrec.config import (
    InstallerConfig,
    RecordingConfig,
    SourceConfig,
    default_output_path,
    validate_gain,
)
from mixrec.core.session import SessionController
from mixrec.exceptions import MixRecError, NoDeviceSelectedError
from mixrec.settings import JsonSettingsStore, gain_to_volume, volume_to_gain
from mixrec.sources.enumerator import CaptureDevice, DeviceEnumerator, DeviceKind, guess_defaults
from mixrec.transcoder import virtual_capturer
from mixrec.transcoder.downloader import HttpDownloader
from mixrec.transcoder.locator import BinaryLocator

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.25
ELAPSED_LOG_INTERVAL = 10.0
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
INTERRUPTED_EXIT_CODE = 130


def create_log_handlers(verbose: bool, log_file: Path | None = None) -> list[logging.Handler]:
    """Console handler at the chosen verbosity, plus a debug-level file log.

    A log file that cannot be opened is reported on stderr and skipped.
    """
    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            print(f"Warning: cannot write log file {log_file}: {e}", file=sys.stderr)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            handlers.append(file_handler)
    return handlers


def setup_logging(verbose: bool, log_file: Path | None = None) -> None:
    """Configure logging based on verbosity setting."""
    handlers = create_log_handlers(verbose, log_file)
    logging.basicConfig(
        level=min(handler.level for handler in handlers),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=handlers,
    )


def print_progress(received: int, total: int | None) -> None:
    """Render a single-line download progress indicator on stderr."""
    mb = received / 1048576
    if total:
        percent = received * 100 // total
        line = f"Downloading: {mb:.1f} MB / {total / 1048576:.1f} MB ({percent}%)"
    else:
        line = f"Downloading: {mb:.1f} MB"
    print(f"\r{line}", end="", file=sys.stderr, flush=True)


def list_devices(devices: list[CaptureDevice]) -> None:
    """Print discovered devices grouped by kind, marking default guesses."""
    print("Available Audio Devices")
    print("=" * 50)

    if not devices:
        print("\n  No audio devices found")
        return

    mic, system = guess_defaults(devices)
    for title, kind in (
        ("Microphones", DeviceKind.MICROPHONE),
        ("System Audio", DeviceKind.SYSTEM_AUDIO),
        ("Other Devices", DeviceKind.UNKNOWN),
    ):
        group = [d for d in devices if d.kind is kind]
        if not group:
            continue
        print(f"\n{title}:")
        print("-" * 30)
        for device in group:
            markers = []
            if device == mic:
                markers.append("default mic")
            if device == system:
                markers.append("default system")
            suffix = f" [{', '.join(markers)}]" if markers else ""
            print(f"  {device.name}{suffix}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mixrec",
        description="Record microphones and system audio into one mixed file using FFmpeg.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Record the guessed microphone and system audio devices
  mixrec -o meeting.mp3

  # List available devices
  mixrec --list-devices

  # Record specific devices with per-device gain
  mixrec --device "Microphone (Realtek)" --gain 1.5 --device virtual-audio-capturer --gain 0.8

  # Timed recording with volume adjustment (percent)
  mixrec -o out.mp3 --duration 60 --mic-volume 120 --sys-volume 60

  # Download FFmpeg into the private cache
  mixrec --install-ffmpeg
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output file path (default: Documents/MixRecordings/Recording_<timestamp>.mp3)",
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio devices and exit",
    )

    # FFmpeg provisioning
    setup_group = parser.add_argument_group("FFmpeg Setup")
    setup_group.add_argument(
        "--ffmpeg",
        type=Path,
        default=None,
        metavar="PATH",
        help="FFmpeg executable to use (default: search cache, PATH and common locations)",
    )
    setup_group.add_argument(
        "--install-ffmpeg",
        action="store_true",
        help="Download FFmpeg into the private cache and exit",
    )
    setup_group.add_argument(
        "--install-capturer",
        action="store_true",
        help="Install the virtual audio capturer (Windows) and exit",
    )

    # Device selection
    device_group = parser.add_argument_group("Device Selection")
    device_group.add_argument(
        "--device",
        action="append",
        default=[],
        metavar="NAME",
        help="Capture device name or substring (repeatable; default: guessed mic + system audio)",
    )
    device_group.add_argument(
        "--gain",
        action="append",
        type=float,
        default=[],
        metavar="G",
        help="Gain 0.0-2.0 for the matching --device (repeatable)",
    )

    # Volume controls
    volume_group = parser.add_argument_group("Volume Controls")
    volume_group.add_argument(
        "--mic-volume",
        type=int,
        default=None,
        metavar="PCT",
        help="Microphone volume percent 0-200 (default: last used, or 100)",
    )
    volume_group.add_argument(
        "--sys-volume",
        type=int,
        default=None,
        metavar="PCT",
        help="System audio volume percent 0-200 (default: last used, or 100)",
    )

    # Recording options
    recording_group = parser.add_argument_group("Recording Options")
    recording_group.add_argument(
        "--duration",
        type=float,
        default=None,
        metavar="SECS",
        help="Recording duration in seconds (default: until Ctrl+C)",
    )

    # Output options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Debug log file (default: debug.log in the mixrec cache directory)",
    )

    return parser


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments.

    Raises:
        ValueError: If arguments are invalid.
    """
    if len(args.gain) > len(args.device):
        raise ValueError(f"Got {len(args.gain)} --gain values for {len(args.device)} --device")

    for gain in args.gain:
        validate_gain(gain)

    for name, value in (("Microphone", args.mic_volume), ("System", args.sys_volume)):
        if value is not None and not 0 <= value <= 200:
            raise ValueError(f"{name} volume must be 0-200, got {value}")

    if args.duration is not None and args.duration <= 0:
        raise ValueError(f"Duration must be positive, got {args.duration}")


def select_devices(
    args: argparse.Namespace, enumerator: DeviceEnumerator
) -> list[CaptureDevice]:
    """Resolve --device arguments, or fall back to the default guesses.

    Raises:
        NoDeviceSelectedError: If nothing could be selected.
        DeviceNotFoundError: If a named device is not listed.
    """
    if args.device:
        return [enumerator.find_device(name) for name in args.device]

    devices = enumerator.discover()
    if not devices:
        raise NoDeviceSelectedError("No audio devices found")

    selected = []
    for guess in guess_defaults(devices):
        if guess is not None and guess not in selected:
            selected.append(guess)
    return selected


def build_config(
    args: argparse.Namespace,
    devices: list[CaptureDevice],
    mic_gain: float,
    sys_gain: float,
) -> RecordingConfig:
    """Build recording configuration from arguments and selected devices."""
    sources = []
    for i, device in enumerate(devices):
        if i < len(args.gain):
            gain = args.gain[i]
        else:
            gain = mic_gain if device.is_microphone else sys_gain
        sources.append(SourceConfig(device_name=device.name, gain=gain))

    return RecordingConfig(
        output_path=args.output or default_output_path(),
        sources=sources,
        duration=args.duration,
        verbose=args.verbose,
    )


def volumes_to_remember(
    devices: list[CaptureDevice],
    config: RecordingConfig,
    mic_volume: int,
    sys_volume: int,
) -> tuple[int, int]:
    """Return the (mic, system) volume percents to persist after recording.

    The gain actually used for the first microphone and the first system
    audio device wins, so an explicit --gain is remembered too.
    """
    mic = next((s for d, s in zip(devices, config.sources) if d.is_microphone), None)
    system = next((s for d, s in zip(devices, config.sources) if d.is_system_audio), None)
    if mic is not None:
        mic_volume = gain_to_volume(mic.gain)
    if system is not None:
        sys_volume = gain_to_volume(system.gain)
    return mic_volume, sys_volume


def record(
    controller: SessionController,
    config: RecordingConfig,
    report_interval: float = ELAPSED_LOG_INTERVAL,
) -> None:
    """Record until the duration elapses, FFmpeg exits, or SIGINT/SIGTERM.

    The elapsed time is logged every report_interval seconds.
    """
    running = True

    def handler(signum: int, frame: FrameType | None) -> None:
        nonlocal running
        logger.info("Received %s, stopping recording...", signal.Signals(signum).name)
        running = False

    original_sigint = signal.signal(signal.SIGINT, handler)
    original_sigterm = signal.signal(signal.SIGTERM, handler)
    try:
        session = controller.start(config.device_names, config.gains, config.output_path)
        logger.info("Recording... Press Ctrl+C to stop")
        next_report = report_interval
        while running:
            if config.duration is not None and session.elapsed >= config.duration:
                logger.info("Duration limit reached (%.1f seconds)", session.elapsed)
                break
            if not controller.check_process():
                break
            if session.elapsed >= next_report:
                logger.info("Elapsed: %s", session.format_elapsed())
                next_report += report_interval
            time.sleep(POLL_INTERVAL)
    finally:
        controller.stop()
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def main() -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args()

    installer_config = InstallerConfig()
    setup_logging(args.verbose, args.log_file or installer_config.cache_dir / "debug.log")

    try:
        validate_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    store = JsonSettingsStore(installer_config.settings_path)
    downloader = HttpDownloader()
    locator = BinaryLocator(installer_config, store, downloader)

    try:
        if args.install_capturer:
            installed = virtual_capturer.install(downloader, progress=print_progress)
            print(file=sys.stderr)
            return 0 if installed else 1

        if args.install_ffmpeg:
            binary = locator.install(progress=print_progress)
            print(file=sys.stderr)
            print(f"FFmpeg installed: {binary}")
            return 0

        binary = args.ffmpeg or locator.require()
        enumerator = DeviceEnumerator(binary)

        if args.list_devices:
            list_devices(enumerator.discover())
            return 0

        settings = store.load()
        mic_volume = args.mic_volume if args.mic_volume is not None else settings.mic_volume
        sys_volume = args.sys_volume if args.sys_volume is not None else settings.sys_volume

        with enumerator:
            devices = select_devices(args, enumerator)
        for device in devices:
            logger.info("Using %s", device)

        config = build_config(args, devices, volume_to_gain(mic_volume), volume_to_gain(sys_volume))
        with SessionController(
            binary, encoder=config.encoder, stop_timeout=config.stop_timeout
        ) as controller:
            record(controller, config)

        mic_volume, sys_volume = volumes_to_remember(devices, config, mic_volume, sys_volume)
        store.update(mic_volume=mic_volume, sys_volume=sys_volume)
        print(f"Saved recording to {config.output_path}")
        return 0
    except MixRecError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return INTERRUPTED_EXIT_CODE


if __name__ == "__main__":
    sys.exit(main())
