"""
All task constants. No imports from other reaction modules.
All time values are in seconds unless the name includes a unit suffix.
"""
import os
from pathlib import Path

# Trial timing (seconds)
COUNTDOWN_S: float = 3.0
RANDOM_DELAY_MIN_S: float = 1.0
RANDOM_DELAY_MAX_S: float = 5.0   # exclusive
FIXED_DELAY_S: float = 2.0

# Streaks
DEFAULT_STREAK_LENGTH: int = 5    # 0 or negative = unbounded

# History
HISTORY_KEY: str = "reaction_history"
HISTORY_MAX_RESULTS: int = 20
LAST_N_WINDOW: int = 5

# Settings
SETTINGS_KEY: str = "app_settings"
THEMES: list[str] = ["Green", "Amber"]
THEME_COLORS: dict[str, str] = {"Green": "green", "Amber": "dark_orange"}  # rich colour names
DEFAULT_THEME: str = "Green"
DEFAULT_VIBRATION_ENABLED: bool = True
DEFAULT_SHOW_COUNTDOWN: bool = True

# Storage
DATA_DIR: Path = Path(os.environ.get("REACTION_TASK_HOME", Path.home() / ".reaction_task"))
STORE_FILENAME: str = "defaults.json"
LOG_FILENAME: str = "reaction.log"

# Console front end
POLL_INTERVAL_S: float = 0.001

# CSV export
EXPORT_FILENAME: str = "reaction_history.csv"
EXPORT_COLUMNS: list[str] = [
    "time_ms", "timestamp", "mode", "delay_seconds", "countdown_shown",
    "vibration_used", "theme", "streak_index",
]
