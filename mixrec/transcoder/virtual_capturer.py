"""Virtual loopback capture device support (Windows).

DirectShow has no built-in "what you hear" source on many systems. The
Screen Capturer Recorder package registers ``virtual-audio-capturer``, which
FFmpeg then lists like any other capture device.
"""

import logging
import os
import subprocess
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path

from mixrec.core.protocols import Downloader, ProgressCallback
from mixrec.exceptions import SpawnFailedError

logger = logging.getLogger(__name__)

INSTALLER_URL = (
    "https://github.com/rdp/screen-capture-recorder-to-video-windows-free/"
    "releases/download/v0.13.3/Setup.Screen.Capturer.Recorder.v0.13.3.exe"
)
RELEASES_URL = "https://github.com/rdp/screen-capture-recorder-to-video-windows-free/releases"
DEVICE_NAME = "virtual-audio-capturer"


def default_install_dirs() -> list[Path]:
    dirs = []
    for var, fallback in (
        ("ProgramFiles(x86)", r"C:\Program Files (x86)"),
        ("ProgramFiles", r"C:\Program Files"),
    ):
        dirs.append(Path(os.environ.get(var, fallback)) / "Screen Capturer Recorder")
    return dirs


def is_installed(search_dirs: Iterable[Path] | None = None) -> bool:
    """Whether the virtual capturer's install directory exists."""
    dirs = default_install_dirs() if search_dirs is None else search_dirs
    return any(Path(d).is_dir() for d in dirs)


def install(
    downloader: Downloader,
    progress: ProgressCallback | None = None,
    search_dirs: Iterable[Path] | None = None,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> bool:
    """Download and silently run the capturer installer.

    Returns:
        True if the capturer is installed afterwards.

    Raises:
        DownloadError: If the installer cannot be downloaded.
        SpawnFailedError: If the installer cannot be started.
    """
    dirs = list(default_install_dirs() if search_dirs is None else search_dirs)
    fd, tmp_name = tempfile.mkstemp(prefix="capturer-setup-", suffix=".exe")
    os.close(fd)
    installer = Path(tmp_name)
    try:
        downloader.download(INSTALLER_URL, installer, progress=progress)
        logger.info("Running %s /S", installer)
        try:
            result = runner([str(installer), "/S"], check=False)
        except OSError as e:
            raise SpawnFailedError(
                f"Failed to run capturer installer: {e}. Install it manually from {RELEASES_URL}"
            ) from e
        logger.info("Capturer installer exited with code %s", result.returncode)
    finally:
        try:
            installer.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove installer %s: %s", installer, e)

    installed = is_installed(dirs)
    if not installed:
        logger.warning("Installation may have failed; try %s", RELEASES_URL)
    return installed
