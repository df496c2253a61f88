"""Configuration dataclasses for transcoder-driven recording."""

import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

FFMPEG_DOWNLOAD_URL = "https://www.gyan.dev/ffmpeg/builds/ffmpeg-release-essentials.zip"
DEFAULT_FILENAME_PATTERN = "Recording_{:%Y-%m-%d_%H-%M-%S}.mp3"

MIN_GAIN = 0.0
MAX_GAIN = 2.0


def default_binary_name() -> str:
    """FFmpeg executable filename for the running platform."""
    return "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"


def default_cache_dir() -> Path:
    """Private per-user cache directory.

    Uses %LOCALAPPDATA%/MixRec on Windows and $XDG_CACHE_HOME/mixrec
    (falling back to ~/.cache/mixrec) elsewhere.
    """
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA")
        if base:
            return Path(base) / "MixRec"
        return Path.home() / "AppData" / "Local" / "MixRec"

    base = os.environ.get("XDG_CACHE_HOME")
    if base:
        return Path(base) / "mixrec"
    return Path.home() / ".cache" / "mixrec"


def default_well_known_dirs() -> tuple[Path, ...]:
    """Package-manager and vendor install locations for FFmpeg."""
    if sys.platform == "win32":
        return (
            Path(r"C:\ProgramData\chocolatey\bin"),
            Path.home() / "scoop" / "shims",
            Path(r"C:\Program Files\ffmpeg\bin"),
            Path(r"C:\Program Files (x86)\ffmpeg\bin"),
            Path(r"C:\ffmpeg\bin"),
            Path(r"C:\ffmpeg"),
        )
    return (
        Path("/usr/local/bin"),
        Path("/opt/homebrew/bin"),
        Path("/usr/bin"),
        Path("/snap/bin"),
    )


def default_output_path(now: datetime | None = None) -> Path:
    """Timestamped recording path under the user's Documents folder."""
    stamp = now or datetime.now()
    return Path.home() / "Documents" / "MixRecordings" / DEFAULT_FILENAME_PATTERN.format(stamp)


def validate_gain(gain: float) -> None:
    """Raise ValueError when a gain lies outside [MIN_GAIN, MAX_GAIN]."""
    if not MIN_GAIN <= gain <= MAX_GAIN:
        raise ValueError(f"Gain must be between {MIN_GAIN} and {MAX_GAIN}, got {gain}")


@dataclass(frozen=True)
class EncoderConfig:
    """Fixed output encoding policy.

    Attributes:
        channels: Number of output channels (default: 2 for stereo).
        sample_rate: Output sample rate in Hz.
        codec: Lossy audio codec passed to -c:a.
        bitrate: Codec bitrate passed to -b:a.
        capture_format: FFmpeg capture interface used for every input.
    """

    channels: int = 2
    sample_rate: int = 48000
    codec: str = "libmp3lame"
    bitrate: str = "192k"
    capture_format: str = "dshow"


@dataclass(frozen=True)
class SourceConfig:
    """Configuration for an individual capture device.

    Attributes:
        device_name: Exact capture-device name as listed by FFmpeg.
        gain: Volume multiplier (0.0 to 2.0).
        enabled: Whether this source is enabled for recording.
    """

    device_name: str | None = None
    gain: float = 1.0
    enabled: bool = True

    def __post_init__(self) -> None:
        validate_gain(self.gain)


@dataclass(frozen=True)
class InstallerConfig:
    """Where to look for FFmpeg and where to install it.

    Attributes:
        download_url: Zip archive with a static FFmpeg build.
        cache_dir: Private cache tree; installs land in cache_dir/ffmpeg.
        binary_name: Executable filename to search for.
        well_known_dirs: Fixed install directories checked after PATH.
    """

    download_url: str = FFMPEG_DOWNLOAD_URL
    cache_dir: Path = field(default_factory=default_cache_dir)
    binary_name: str = field(default_factory=default_binary_name)
    well_known_dirs: tuple[Path, ...] = field(default_factory=default_well_known_dirs)

    def __post_init__(self) -> None:
        if isinstance(self.cache_dir, str):
            object.__setattr__(self, "cache_dir", Path(self.cache_dir))

    @property
    def install_dir(self) -> Path:
        """Directory the downloaded archive is extracted into."""
        return self.cache_dir / "ffmpeg"

    @property
    def settings_path(self) -> Path:
        """Location of the persisted settings file."""
        return self.cache_dir / "config.json"


@dataclass
class RecordingConfig:
    """Configuration for a recording run.

    Attributes:
        output_path: Destination file (overwritten without prompting).
        sources: Selected capture devices, in filter-graph input order.
        encoder: Output encoding policy.
        duration: Recording duration in seconds (None for indefinite).
        stop_timeout: Seconds to wait for a graceful stop before killing.
        verbose: Enable verbose logging.
    """

    output_path: Path
    sources: list[SourceConfig] = field(default_factory=list)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    duration: float | None = None
    stop_timeout: float = 5.0
    verbose: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.output_path, str):
            object.__setattr__(self, "output_path", Path(self.output_path))
        if self.duration is not None and self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        return [s for s in self.sources if s.enabled and s.device_name]

    @property
    def device_names(self) -> list[str]:
        return [s.device_name for s in self.enabled_sources if s.device_name]

    @property
    def gains(self) -> list[float]:
        return [s.gain for s in self.enabled_sources]
