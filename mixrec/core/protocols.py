"""Protocol definitions for the recorder's external collaborators.

These protocols define the contracts for persisted settings and archive
downloads, so the locator and installer can be exercised with in-memory fakes.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass
class Settings:
    """Values the recorder persists between runs.

    Attributes:
        ffmpeg_path: Last resolved FFmpeg binary (re-validated before use).
        mic_volume: Last microphone gain as an integer percent.
        sys_volume: Last system-audio gain as an integer percent.
    """

    ffmpeg_path: str | None = None
    mic_volume: int = 100
    sys_volume: int = 100


class SettingsStore(Protocol):
    """Protocol for the flat key-value settings collaborator.

    Implementations must never raise from load(): unreadable or malformed
    state is reported as default Settings.
    """

    def load(self) -> Settings:
        """Read persisted settings, falling back to defaults."""
        ...

    def save(self, settings: Settings) -> None:
        """Persist settings. Write failures are logged, not raised."""
        ...


class ProgressCallback(Protocol):
    """Observer for incremental download progress."""

    def __call__(self, received: int, total: int | None) -> None:
        """Report bytes received so far and the expected total, if known."""
        ...


class Downloader(Protocol):
    """Protocol for the HTTP download collaborator."""

    def download(
        self,
        url: str,
        destination: Path,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Stream url to destination.

        Raises:
            DownloadError: On network or HTTP failure.
            DownloadCancelledError: If cancel_event is set mid-transfer.
        """
        ...
