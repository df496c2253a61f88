"""JSON-backed settings store.

Persists the cached FFmpeg path and the last microphone / system-audio
volumes. Reads never fail: anything unreadable is treated as "no value".
"""

import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from mixrec.config import MAX_GAIN, MIN_GAIN
from mixrec.core.protocols import Settings

logger = logging.getLogger(__name__)


def volume_to_gain(percent: int) -> float:
    """Convert a stored integer percent to a gain clamped to [0.0, 2.0]."""
    return min(MAX_GAIN, max(MIN_GAIN, percent / 100.0))


def gain_to_volume(gain: float) -> int:
    """Convert a gain to the integer percent stored in settings (0-200)."""
    return min(round(MAX_GAIN * 100), max(round(MIN_GAIN * 100), round(gain * 100)))


def _coerce_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


class JsonSettingsStore:
    """Settings store backed by a small JSON document.

    Args:
        path: Location of the JSON file (parent directory is created on save).

    Example:
        store = JsonSettingsStore(config.settings_path)
        settings = store.load()
        store.update(mic_volume=80)
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Settings:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Settings()
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable settings %s: %s", self._path, e)
            return Settings()

        if not isinstance(raw, dict):
            logger.debug("Ignoring malformed settings %s", self._path)
            return Settings()

        ffmpeg_path = raw.get("ffmpeg_path")
        if not isinstance(ffmpeg_path, str) or not ffmpeg_path:
            ffmpeg_path = None

        return Settings(
            ffmpeg_path=ffmpeg_path,
            mic_volume=_coerce_int(raw.get("mic_volume"), 100),
            sys_volume=_coerce_int(raw.get("sys_volume"), 100),
        )

    def save(self, settings: Settings) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to save settings to %s: %s", self._path, e)

    def update(self, **changes: Any) -> Settings:
        """Load, apply changes and save. Returns the saved settings."""
        settings = replace(self.load(), **changes)
        self.save(settings)
        return settings


class MemorySettingsStore:
    """In-memory settings store for callers that must not touch disk."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    def load(self) -> Settings:
        return replace(self._settings)

    def save(self, settings: Settings) -> None:
        self._settings = replace(settings)
