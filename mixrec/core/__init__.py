"""Core recording components."""

from mixrec.core.protocols import Downloader, Settings, SettingsStore
from mixrec.core.mixer import FilterGraphMixer, MixerInput
from mixrec.core.command import build_arguments, format_command
from mixrec.core.process import TranscoderProcess
from mixrec.core.session import RecordingSession, SessionController, SessionState

__all__ = [
    "Downloader",
    "FilterGraphMixer",
    "MixerInput",
    "RecordingSession",
    "SessionController",
    "SessionState",
    "Settings",
    "SettingsStore",
    "TranscoderProcess",
    "build_arguments",
    "format_command",
]
