"""Shared fixtures: fake FFmpeg binaries, processes and downloaders.

Nothing here spawns a real process or opens a network connection.
"""

import io
import subprocess
import threading
import zipfile
from pathlib import Path

import pytest

from mixrec.core.protocols import Settings
from mixrec.exceptions import DownloadError
from mixrec.settings import MemorySettingsStore

SAMPLE_LISTING = """\
[dshow @ 000001] "Integrated Webcam" (video)
[dshow @ 000001]   Alternative name "@device_pnp_\\\\?\\usb#vid_0c45"
[dshow @ 000001] "Microphone (Realtek)" (audio)
[dshow @ 000001]   Alternative name "@device_cm_{33D9A762}\\wave_{A1B2}" (audio)
[dshow @ 000001] (audio) "virtual-audio-capturer"
dummy: Immediate exit requested
"""


class FakeStdin:
    """Writable stand-in for Popen.stdin that records what was sent."""

    def __init__(self, broken: bool = False) -> None:
        self.broken = broken
        self.written = b""
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed file")
        if self.broken:
            raise BrokenPipeError(32, "Broken pipe")
        self.written += data
        return len(data)

    def flush(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed file")

    def close(self) -> None:
        self.closed = True


class FakePopen:
    """Minimal subprocess.Popen double.

    Args:
        honour_quit: Exit with code 0 once "q" arrives and stdin is closed.
        exited: Start out as an already-finished process with this code.
        broken_stdin: Writing to stdin raises BrokenPipeError.
        interrupt_wait: wait() raises KeyboardInterrupt until killed.
    """

    instances: list["FakePopen"] = []

    def __init__(
        self,
        args,
        honour_quit: bool = True,
        exited: int | None = None,
        broken_stdin: bool = False,
        interrupt_wait: bool = False,
        **kwargs,
    ) -> None:
        self.args = args
        self.kwargs = kwargs
        self.pid = 4242
        self.stdin = FakeStdin(broken=broken_stdin)
        self.returncode = exited
        self.honour_quit = honour_quit
        self.interrupt_wait = interrupt_wait
        self.killed = False
        self.wait_calls: list[float | None] = []
        FakePopen.instances.append(self)

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        self.wait_calls.append(timeout)
        if self.interrupt_wait and not self.killed:
            raise KeyboardInterrupt
        if self.returncode is not None:
            return self.returncode
        if self.honour_quit and self.stdin.closed and b"q" in self.stdin.written:
            self.returncode = 0
            return 0
        raise subprocess.TimeoutExpired(self.args, timeout)

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9


def popen_factory(**behaviour):
    """Build a Popen-compatible callable producing FakePopen instances."""

    def factory(args, **kwargs):
        return FakePopen(args, **behaviour, **kwargs)

    return factory


@pytest.fixture(autouse=True)
def _reset_fake_popen():
    FakePopen.instances = []
    yield
    FakePopen.instances = []


@pytest.fixture
def fake_binary(tmp_path: Path) -> Path:
    """An existing file standing in for the FFmpeg executable."""
    binary = tmp_path / "bin" / "ffmpeg"
    binary.parent.mkdir()
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def settings_store() -> MemorySettingsStore:
    return MemorySettingsStore(Settings())


def make_zip(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


class FakeDownloader:
    """Downloader double that writes a fixed payload or fails."""

    def __init__(self, payload: bytes = b"", error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[tuple[str, Path]] = []

    def download(self, url, destination, progress=None, cancel_event=None):
        self.calls.append((url, Path(destination)))
        if self.error is not None:
            Path(destination).write_bytes(b"partial")
            raise self.error
        Path(destination).write_bytes(self.payload)
        if progress is not None:
            progress(len(self.payload), len(self.payload))
        return Path(destination)


@pytest.fixture
def failing_downloader() -> FakeDownloader:
    return FakeDownloader(error=DownloadError("connection refused"))


class StalledDownloader:
    """Downloader double whose transfer hangs until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def download(self, url, destination, progress=None, cancel_event=None):
        self.started.set()
        self.release.wait(10)
        return Path(destination)


@pytest.fixture
def stalled_downloader():
    downloader = StalledDownloader()
    yield downloader
    downloader.release.set()
