"""Custom exceptions for the mixing recorder."""

MANUAL_DOWNLOAD_URL = "https://ffmpeg.org/download.html"


class MixRecError(Exception):
    """Base exception for all mixing recorder errors."""


class NotFoundError(MixRecError):
    """Raised when something the recorder needs is absent."""


class TranscoderNotFoundError(NotFoundError):
    """Raised when no usable FFmpeg binary can be located."""

    def __init__(self, binary_name: str = "ffmpeg") -> None:
        self.binary_name = binary_name
        super().__init__(
            f"{binary_name} not found. Install it with --install-ffmpeg "
            f"or download it manually from {MANUAL_DOWNLOAD_URL}"
        )


class DeviceNotFoundError(NotFoundError):
    """Raised when a requested capture device cannot be found."""

    def __init__(self, device_name: str, device_type: str = "device") -> None:
        self.device_name = device_name
        self.device_type = device_type
        super().__init__(f"{device_type.capitalize()} not found: '{device_name}'")


class NoDevicesAvailableError(NotFoundError):
    """Raised when discovery yields no capture devices."""

    def __init__(self, device_type: str = "audio capture") -> None:
        self.device_type = device_type
        super().__init__(f"No {device_type} devices available")


class SpawnFailedError(MixRecError):
    """Raised when the transcoder process cannot be created."""


class InstallError(MixRecError):
    """Base class for transcoder installation failures."""


class DownloadError(InstallError):
    """Raised when downloading an archive or installer fails."""


class DownloadCancelledError(DownloadError):
    """Raised when a download is cancelled by its caller."""


class ExtractError(InstallError):
    """Raised when a downloaded archive cannot be unpacked."""


class BinaryNotFoundInArchiveError(InstallError):
    """Raised when the extracted archive does not contain the binary."""

    def __init__(self, binary_name: str) -> None:
        self.binary_name = binary_name
        super().__init__(
            f"{binary_name} not found in extracted archive. "
            f"Download it manually from {MANUAL_DOWNLOAD_URL}"
        )


class SessionError(MixRecError):
    """Raised when the recording session encounters an error."""


class AlreadyRecordingError(SessionError):
    """Raised when a recording is started while another is active."""


class NoDeviceSelectedError(SessionError):
    """Raised when a recording is started without any capture device."""
