"""Recording session control.

This module provides the SessionController, which owns the Idle/Recording
state machine around a single FFmpeg recording process.
"""

import atexit
import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Self

from mixrec.config import EncoderConfig
from mixrec.core.command import build_arguments, format_command
from mixrec.core.process import DEFAULT_STOP_TIMEOUT, TranscoderProcess
from mixrec.exceptions import (
    AlreadyRecordingError,
    NoDeviceSelectedError,
    SessionError,
    TranscoderNotFoundError,
)
from mixrec.sources.enumerator import CaptureDevice
from mixrec.transcoder.locator import BinaryLocator

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    RECORDING = "recording"


def format_elapsed(seconds: float) -> str:
    """Format a duration as HH:MM:SS."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass
class RecordingSession:
    """The unit of work for one recording.

    Attributes:
        devices: Selected devices, in filter-graph input order.
        gains: One gain per device.
        output_path: Destination file.
        process: The supervised FFmpeg process.
        started_at: time.monotonic() at start.
        started_wallclock: Local time at start.
    """

    devices: list[CaptureDevice]
    gains: list[float]
    output_path: Path
    process: TranscoderProcess
    started_at: float = field(default_factory=time.monotonic)
    started_wallclock: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        if len(self.devices) != len(self.gains):
            raise ValueError(f"Got {len(self.devices)} devices but {len(self.gains)} gains")

    @property
    def elapsed(self) -> float:
        """Seconds since the recording started."""
        return time.monotonic() - self.started_at

    def format_elapsed(self) -> str:
        return format_elapsed(self.elapsed)


class SessionController:
    """Starts and stops FFmpeg recordings, one at a time.

    State machine: IDLE -> RECORDING -> IDLE. stop() always returns to
    IDLE; shutdown() force-kills without the graceful protocol and is
    registered with atexit so an exiting interpreter never leaves FFmpeg
    running.

    Args:
        binary: A BinaryLocator, or a fixed FFmpeg path.
        encoder: Output encoding policy.
        stop_timeout: Seconds to wait for a graceful stop before killing.
        popen: Callable with subprocess.Popen's signature (injectable for tests).
        register_atexit: Whether to register shutdown() with atexit.

    Example:
        with SessionController(locator) as controller:
            controller.start(devices, [1.0, 0.8], Path("out.mp3"))
            ...
            controller.stop()
    """

    def __init__(
        self,
        binary: BinaryLocator | Path | str | None,
        encoder: EncoderConfig | None = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        register_atexit: bool = True,
    ) -> None:
        self._binary = Path(binary) if isinstance(binary, str) else binary
        self._encoder = encoder or EncoderConfig()
        self._stop_timeout = stop_timeout
        self._popen = popen
        self._session: RecordingSession | None = None
        self._atexit_registered = False
        if register_atexit:
            atexit.register(self.shutdown)
            self._atexit_registered = True

    @property
    def state(self) -> SessionState:
        return SessionState.RECORDING if self._session is not None else SessionState.IDLE

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> RecordingSession | None:
        return self._session

    @property
    def elapsed(self) -> float:
        return self._session.elapsed if self._session is not None else 0.0

    def _resolve_binary(self) -> Path:
        if isinstance(self._binary, BinaryLocator):
            return self._binary.require()
        if self._binary is None or not self._binary.is_file():
            raise TranscoderNotFoundError(self._binary.name if self._binary else "ffmpeg")
        return self._binary

    def start(
        self,
        devices: Sequence[CaptureDevice | str],
        gains: Sequence[float],
        output_path: Path | str,
    ) -> RecordingSession:
        """Start recording devices into output_path.

        Raises:
            AlreadyRecordingError: A recording is already active (left untouched).
            NoDeviceSelectedError: devices is empty.
            TranscoderNotFoundError: No usable FFmpeg binary.
            SessionError: The destination directory cannot be created.
            SpawnFailedError: FFmpeg could not be started.
        """
        if self._session is not None:
            raise AlreadyRecordingError(
                f"Already recording to {self._session.output_path}"
            )
        if not devices:
            raise NoDeviceSelectedError("Select at least one audio device")

        selected = [d if isinstance(d, CaptureDevice) else CaptureDevice(d) for d in devices]
        output_path = Path(output_path)
        args = build_arguments(output_path, selected, list(gains), self._encoder)
        binary = self._resolve_binary()

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionError(f"Cannot create {output_path.parent}: {e}") from e

        logger.info("Running: %s", format_command(binary, args))
        process = TranscoderProcess(binary, args, popen=self._popen)
        process.spawn()

        self._session = RecordingSession(
            devices=selected,
            gains=list(gains),
            output_path=output_path,
            process=process,
        )
        logger.info(
            "Recording %d source(s) to %s", len(selected), output_path
        )
        return self._session

    def stop(self) -> RecordingSession | None:
        """Stop the active recording; a no-op returning None when idle.

        Returns:
            The session that was stopped.
        """
        session = self._session
        if session is None:
            return None

        try:
            session.process.stop(self._stop_timeout)
        finally:
            self._session = None
        logger.info("Recording stopped after %s", session.format_elapsed())
        return session

    def check_process(self) -> bool:
        """Return whether the recording process is still alive.

        A process that died on its own (crash, external kill) releases the
        session, as if stop() had found it already gone.
        """
        session = self._session
        if session is None:
            return False
        if session.process.is_running:
            return True

        logger.warning(
            "Transcoder exited unexpectedly with code %s", session.process.returncode
        )
        self._session = None
        return False

    def shutdown(self) -> None:
        """Force-kill any active recording without negotiating a stop."""
        session = self._session
        self._session = None
        if session is not None:
            logger.info("Shutting down: terminating active recording")
            session.process.kill()

    def close(self) -> None:
        """Shut down and unregister the atexit hook."""
        self.shutdown()
        if self._atexit_registered:
            atexit.unregister(self.shutdown)
            self._atexit_registered = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: object,
    ) -> None:
        self.close()
