"""
Data recording: TrialResult, HistoryStore, HistoryCsvWriter, export_history_csv.
"""
from __future__ import annotations

import csv
import enum
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from psychopy import logging

from reaction import config
from reaction.storage import JsonFileStore


class ResultMode(str, enum.Enum):
    NORMAL = "normal"
    STREAK = "streak"


@dataclass(frozen=True)
class TrialResult:
    id: str
    time_ms: int
    timestamp: datetime
    mode: ResultMode = ResultMode.NORMAL
    delay_seconds: float = 0.0
    countdown_shown: bool = False
    vibration_used: bool = False
    theme: str = config.DEFAULT_THEME
    streak_index: int | None = None
    streak_scores: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        if self.time_ms < 0:
            raise ValueError(f"time_ms must be >= 0, got {self.time_ms}")
        has_index = self.streak_index is not None
        if has_index != (self.streak_scores is not None) or has_index != (self.mode == ResultMode.STREAK):
            raise ValueError("streak_index and streak_scores must be present iff mode is STREAK")
        if has_index:
            if not 0 <= self.streak_index < len(self.streak_scores):
                raise ValueError(
                    f"streak_index {self.streak_index} out of range for {len(self.streak_scores)} scores"
                )
            if self.streak_scores[self.streak_index] != self.time_ms:
                raise ValueError("streak_scores[streak_index] must equal time_ms")

    def to_dict(self) -> dict[str, Any]:
        """Serialized (storage) form."""
        d: dict[str, Any] = {
            "id": self.id,
            "timeMs": self.time_ms,
            "timestamp": self.timestamp.isoformat(),
            "mode": self.mode.value,
            "delaySeconds": self.delay_seconds,
            "countdownShown": self.countdown_shown,
            "vibrationUsed": self.vibration_used,
            "theme": self.theme,
        }
        if self.streak_index is not None:
            d["streakIndex"] = self.streak_index
            d["streakScores"] = list(self.streak_scores)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrialResult:
        """Decode the current schema.  Raises KeyError/TypeError/ValueError on mismatch."""
        scores = d.get("streakScores")
        return cls(
            id=str(d["id"]),
            time_ms=_as_int(d["timeMs"]),
            timestamp=_parse_timestamp(d["timestamp"]),
            mode=ResultMode(d["mode"]),
            delay_seconds=float(d["delaySeconds"]),
            countdown_shown=_as_bool(d["countdownShown"]),
            vibration_used=_as_bool(d["vibrationUsed"]),
            theme=str(d["theme"]),
            streak_index=_as_int(d["streakIndex"]) if d.get("streakIndex") is not None else None,
            streak_scores=tuple(_as_int(s) for s in scores) if scores is not None else None,
        )

    @classmethod
    def from_legacy_dict(cls, d: dict[str, Any]) -> TrialResult:
        """Decode the legacy {id, timeMs, timestamp} schema, defaulting everything else."""
        return cls(
            id=str(d["id"]),
            time_ms=_as_int(d["timeMs"]),
            timestamp=_parse_timestamp(d["timestamp"]),
        )


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {value!r}")
    return value


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected bool, got {value!r}")
    return value


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"expected ISO 8601 string, got {value!r}")
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def new_result_id() -> str:
    return str(uuid.uuid4())


_DECODE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class HistoryStore:
    """
    Newest-first log of completed trials, capped at max_results.

    The log is read from durable storage on first use and cached; append() and
    clear() update cache and storage together under one lock, so load() never
    observes a log mid-truncation.
    """

    def __init__(self, store: JsonFileStore, max_results: int = config.HISTORY_MAX_RESULTS) -> None:
        self._store = store
        self._max_results = max_results
        self._lock = threading.Lock()
        self._results: list[TrialResult] | None = None

    def load(self) -> list[TrialResult]:
        with self._lock:
            return list(self._ensure_loaded())

    def append(self, result: TrialResult) -> None:
        with self._lock:
            results = [result] + self._ensure_loaded()
            if len(results) > self._max_results:
                dropped = len(results) - self._max_results
                results = results[: self._max_results]
                logging.exp(f"History cap reached: evicted {dropped} oldest result(s)")
            self._store.set(config.HISTORY_KEY, [r.to_dict() for r in results])
            self._results = results
        logging.data(f"Saved {result.mode.value} result: {result.time_ms} ms (id={result.id})")

    def clear(self) -> None:
        with self._lock:
            self._store.remove(config.HISTORY_KEY)
            self._results = []
        logging.exp("History cleared")

    def best_time(self) -> int | None:
        with self._lock:
            results = self._ensure_loaded()
            if not results:
                return None
            return min(r.time_ms for r in results)

    def recent(self, n: int) -> list[TrialResult]:
        """Return the newest n results."""
        if n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        with self._lock:
            return list(self._ensure_loaded()[:n])

    def save_reaction(
        self,
        time_ms: int,
        mode: ResultMode = ResultMode.NORMAL,
        delay_seconds: float = 0.0,
        countdown_shown: bool = False,
        vibration_used: bool = False,
        theme: str = config.DEFAULT_THEME,
        streak_index: int | None = None,
        streak_scores: Sequence[int] | None = None,
    ) -> TrialResult:
        """Build a new TrialResult stamped with a fresh id and the current time, and append it."""
        result = TrialResult(
            id=new_result_id(),
            time_ms=time_ms,
            timestamp=datetime.now(timezone.utc),
            mode=mode,
            delay_seconds=delay_seconds,
            countdown_shown=countdown_shown,
            vibration_used=vibration_used,
            theme=theme,
            streak_index=streak_index,
            streak_scores=tuple(streak_scores) if streak_scores is not None else None,
        )
        self.append(result)
        return result

    def _ensure_loaded(self) -> list[TrialResult]:
        if self._results is None:
            self._results = self._decode(self._store.get(config.HISTORY_KEY))
        return self._results

    def _decode(self, raw: Any) -> list[TrialResult]:
        if raw is None:
            return []
        if not isinstance(raw, list) or not all(isinstance(d, dict) for d in raw):
            logging.warning(f"History is not a list of records ({type(raw).__name__}); starting empty")
            return []
        try:
            return [TrialResult.from_dict(d) for d in raw]
        except _DECODE_ERRORS as exc:
            logging.warning(f"History does not match current schema ({exc!r}); trying legacy schema")
        try:
            results = [TrialResult.from_legacy_dict(d) for d in raw]
        except _DECODE_ERRORS as exc:
            logging.warning(f"History could not be migrated ({exc!r}); starting empty")
            return []
        logging.exp(f"Migrated {len(results)} legacy history entries")
        return results[: self._max_results]


class HistoryCsvWriter:
    def __init__(self, path: Path) -> None:
        self._file = open(path, "w", newline="")
        self._writer = csv.DictWriter(self._file, fieldnames=config.EXPORT_COLUMNS)
        self._writer.writeheader()

    def append(self, result: TrialResult) -> None:
        self._writer.writerow({
            "time_ms": result.time_ms,
            "timestamp": result.timestamp.isoformat(timespec="seconds"),
            "mode": result.mode.value,
            "delay_seconds": round(result.delay_seconds, 3),
            "countdown_shown": int(result.countdown_shown),
            "vibration_used": int(result.vibration_used),
            "theme": result.theme,
            "streak_index": "" if result.streak_index is None else result.streak_index,
        })
        self._file.flush()

    def close(self) -> None:
        self._file.close()


def export_history_csv(results: Sequence[TrialResult], path: Path) -> Path:
    """Write results (newest first) to path as CSV and return the path."""
    writer = HistoryCsvWriter(path)
    try:
        for r in results:
            writer.append(r)
    finally:
        writer.close()
    logging.exp(f"Exported {len(results)} result(s) to {path}")
    return path
