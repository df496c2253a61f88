"""Record several audio capture devices into one mixed file with FFmpeg."""

__version__ = "0.1.0"

from mixrec.core import (
    FilterGraphMixer,
    RecordingSession,
    SessionController,
    SessionState,
    build_arguments,
)
from mixrec.sources import CaptureDevice, DeviceEnumerator, DeviceKind, classify, guess_defaults
from mixrec.transcoder import BinaryLocator, HttpDownloader

__all__ = [
    "BinaryLocator",
    "CaptureDevice",
    "DeviceEnumerator",
    "DeviceKind",
    "FilterGraphMixer",
    "HttpDownloader",
    "RecordingSession",
    "SessionController",
    "SessionState",
    "__version__",
    "build_arguments",
    "classify",
    "guess_defaults",
]
