"""
Session initialisation: trial configuration, persisted user settings and the
data directory.
"""
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from psychopy import logging

from reaction import config
from reaction.storage import JsonFileStore

if TYPE_CHECKING:
    from reaction.recorder import HistoryStore


class DelayMode(str, enum.Enum):
    RANDOM = "random"
    FIXED = "fixed"


@dataclass(frozen=True)
class AppSettings:
    vibration_enabled: bool = config.DEFAULT_VIBRATION_ENABLED
    show_countdown: bool = config.DEFAULT_SHOW_COUNTDOWN
    button_theme: str = config.DEFAULT_THEME


@dataclass(frozen=True)
class TrialConfig:
    delay_mode: DelayMode = DelayMode.RANDOM
    show_countdown: bool = config.DEFAULT_SHOW_COUNTDOWN
    vibration_enabled: bool = config.DEFAULT_VIBRATION_ENABLED
    theme: str = config.DEFAULT_THEME
    streak_length: int = config.DEFAULT_STREAK_LENGTH   # 0 or negative = unbounded
    streak_mode: bool = False

    @property
    def unbounded(self) -> bool:
        return self.streak_length <= 0

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        delay_mode: DelayMode = DelayMode.RANDOM,
        streak_mode: bool = False,
        streak_length: int = config.DEFAULT_STREAK_LENGTH,
    ) -> TrialConfig:
        return cls(
            delay_mode=delay_mode,
            show_countdown=settings.show_countdown,
            vibration_enabled=settings.vibration_enabled,
            theme=settings.button_theme,
            streak_length=streak_length,
            streak_mode=streak_mode,
        )


class SettingsStore:
    """Loads and saves AppSettings under config.SETTINGS_KEY."""

    def __init__(self, store: JsonFileStore) -> None:
        self._store = store

    def load(self) -> AppSettings:
        """Return saved settings, or defaults when missing or undecodable."""
        raw = self._store.get(config.SETTINGS_KEY)
        if raw is None:
            return AppSettings()
        try:
            settings = AppSettings(
                vibration_enabled=bool(raw["vibration_enabled"]),
                show_countdown=bool(raw["show_countdown"]),
                button_theme=str(raw["button_theme"]),
            )
        except (KeyError, TypeError) as exc:
            logging.warning(f"Settings could not be decoded ({exc!r}); using defaults")
            return AppSettings()
        return settings

    def save(self, settings: AppSettings) -> None:
        if settings.button_theme not in config.THEMES:
            raise ValueError(f"Unknown theme {settings.button_theme!r}; expected one of {config.THEMES}")
        self._store.set(config.SETTINGS_KEY, asdict(settings))

    def reset(self) -> None:
        self._store.remove(config.SETTINGS_KEY)


def reset_all_data(settings_store: SettingsStore, history: "HistoryStore") -> None:
    """Restore default settings and erase all history."""
    settings_store.reset()
    history.clear()
    logging.exp("All data reset: settings restored to defaults, history cleared")


def make_data_dir(data_dir: Path | None = None) -> Path:
    """Create and return the data directory (config.DATA_DIR by default)."""
    path = Path(data_dir) if data_dir is not None else config.DATA_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def open_store(data_dir: Path) -> JsonFileStore:
    """Return the JsonFileStore that holds settings and history in data_dir."""
    return JsonFileStore(data_dir / config.STORE_FILENAME)
