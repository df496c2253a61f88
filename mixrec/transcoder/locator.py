"""Locating and installing the FFmpeg binary.

The locator owns the cached binary path. Every candidate, including the
cached one, is validated with an existence check before it is returned, and
the winning path is written back to the settings store.
"""

import logging
import os
import stat
import sys
import tempfile
import threading
import zipfile
from collections.abc import Iterator
from pathlib import Path

from mixrec.config import InstallerConfig
from mixrec.core.protocols import Downloader, ProgressCallback, SettingsStore
from mixrec.exceptions import (
    BinaryNotFoundInArchiveError,
    ExtractError,
    TranscoderNotFoundError,
)
from mixrec.settings import MemorySettingsStore
from mixrec.transcoder.downloader import DownloadTask, HttpDownloader

logger = logging.getLogger(__name__)

DOWNLOAD_POLL_INTERVAL = 0.05


def find_in_tree(root: Path, filename: str) -> Path | None:
    """Recursively search root for a file called filename."""
    if not root.is_dir():
        return None
    for candidate in sorted(root.rglob(filename)):
        if candidate.is_file():
            return candidate
    return None


def _safe_extract(archive: zipfile.ZipFile, target: Path) -> None:
    """Extract every member, refusing paths that escape target."""
    root = target.resolve()
    for member in archive.infolist():
        destination = (root / member.filename).resolve()
        if destination != root and root not in destination.parents:
            raise ExtractError(f"Archive member escapes install directory: {member.filename}")
    archive.extractall(root)


class BinaryLocator:
    """Finds a usable FFmpeg executable, or downloads one.

    Search order (first existing file wins):
        1. path cached in the settings store
        2. each PATH entry joined with the binary name
        3. well-known package-manager / vendor directories
        4. recursive search of the private install directory

    Args:
        config: Installer configuration (binary name, directories, URL).
        settings: Persisted settings collaborator.
        downloader: Download collaborator used by install().
        environ: Environment mapping consulted for PATH (default: os.environ).

    Example:
        locator = BinaryLocator(InstallerConfig(), JsonSettingsStore(path))
        binary = locator.locate() or locator.install()
    """

    def __init__(
        self,
        config: InstallerConfig | None = None,
        settings: SettingsStore | None = None,
        downloader: Downloader | None = None,
        environ: dict[str, str] | None = None,
    ) -> None:
        self._config = config or InstallerConfig()
        self._settings = settings if settings is not None else MemorySettingsStore()
        self._downloader = downloader
        self._environ = environ
        self._binary: Path | None = None

    @property
    def config(self) -> InstallerConfig:
        return self._config

    @property
    def binary(self) -> Path | None:
        """Last resolved binary, or None if it has since disappeared."""
        if self._binary is not None and not self._binary.is_file():
            logger.warning("Previously located binary %s no longer exists", self._binary)
            self._binary = None
        return self._binary

    def _search_path_candidates(self) -> Iterator[Path]:
        environ = os.environ if self._environ is None else self._environ
        for entry in environ.get("PATH", "").split(os.pathsep):
            entry = entry.strip().strip('"')
            if entry:
                yield Path(entry) / self._config.binary_name

    def _candidates(self) -> Iterator[tuple[str, Path]]:
        cached = self._settings.load().ffmpeg_path
        if cached:
            yield "cache", Path(cached)

        for path in self._search_path_candidates():
            yield "PATH", path

        for directory in self._config.well_known_dirs:
            yield "well-known", directory / self._config.binary_name

        found = find_in_tree(self._config.install_dir, self._config.binary_name)
        if found is not None:
            yield "install dir", found

    def _remember(self, binary: Path) -> Path:
        self._binary = binary
        settings = self._settings.load()
        if settings.ffmpeg_path != str(binary):
            settings.ffmpeg_path = str(binary)
            self._settings.save(settings)
        return binary

    def locate(self) -> Path | None:
        """Return the first existing FFmpeg candidate, or None."""
        for origin, candidate in self._candidates():
            if candidate.is_file():
                logger.info("Found %s via %s: %s", self._config.binary_name, origin, candidate)
                return self._remember(candidate)
        logger.info("%s not found", self._config.binary_name)
        return None

    def require(self) -> Path:
        """Return a validated binary path.

        Raises:
            TranscoderNotFoundError: If no binary can be located.
        """
        binary = self.binary or self.locate()
        if binary is None:
            raise TranscoderNotFoundError(self._config.binary_name)
        return binary

    def install(
        self,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Download, unpack and register an FFmpeg build.

        The temporary archive is removed on every exit path.

        Raises:
            DownloadError: Network/HTTP failure or cancellation.
            ExtractError: The archive is corrupt or unsafe.
            BinaryNotFoundInArchiveError: No binary in the extracted tree.
        """
        if self._downloader is None:
            self._downloader = HttpDownloader()

        install_dir = self._config.install_dir
        fd, tmp_name = tempfile.mkstemp(prefix="ffmpeg-", suffix=".zip")
        os.close(fd)
        archive_path = Path(tmp_name)
        try:
            task = DownloadTask(
                self._downloader,
                self._config.download_url,
                archive_path,
                progress=progress,
                cancel_event=cancel_event,
            )
            try:
                task.wait(poll_interval=DOWNLOAD_POLL_INTERVAL)
            except KeyboardInterrupt:
                task.cancel()
                raise
            self._extract(archive_path, install_dir)
        finally:
            try:
                archive_path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to remove temporary archive %s: %s", archive_path, e)

        binary = find_in_tree(install_dir, self._config.binary_name)
        if binary is None:
            raise BinaryNotFoundInArchiveError(self._config.binary_name)

        if sys.platform != "win32":
            try:
                binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            except OSError as e:
                logger.warning("Could not mark %s executable: %s", binary, e)

        logger.info("Installed %s to %s", self._config.binary_name, binary)
        return self._remember(binary)

    def _extract(self, archive_path: Path, install_dir: Path) -> None:
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExtractError(f"Cannot create {install_dir}: {e}") from e

        try:
            with zipfile.ZipFile(archive_path) as archive:
                bad_member = archive.testzip()
                if bad_member is not None:
                    raise ExtractError(f"Corrupt archive member: {bad_member}")
                _safe_extract(archive, install_dir)
        except zipfile.BadZipFile as e:
            raise ExtractError(f"Corrupt archive: {e}") from e
        except (OSError, EOFError) as e:
            raise ExtractError(f"Failed to extract archive: {e}") from e
        logger.info("Extracted archive into %s", install_dir)

