"""
Statistics over reaction times (ms).  Pure functions, no owned state.

best/average/deviation apply unchanged to the whole history, a trailing
window or one streak's results.  Each returns None for an empty sequence;
callers treat None as "not yet available", never as zero.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import tzinfo
from typing import TYPE_CHECKING, Sequence

import numpy as np
import pandas as pd

from reaction import config

if TYPE_CHECKING:
    from reaction.recorder import TrialResult


@dataclass(frozen=True)
class StreakSummary:
    average: int
    best: int
    deviation: int


def best(xs: Sequence[int]) -> int | None:
    if len(xs) == 0:
        return None
    return int(min(xs))


def worst(xs: Sequence[int]) -> int | None:
    if len(xs) == 0:
        return None
    return int(max(xs))


def average(xs: Sequence[int]) -> int | None:
    """Integer mean, floored (not rounded)."""
    if len(xs) == 0:
        return None
    return int(sum(xs)) // len(xs)


def deviation(xs: Sequence[int]) -> int | None:
    """Population standard deviation (divide by N), truncated once at the end."""
    if len(xs) == 0:
        return None
    arr = np.asarray(xs, dtype=float)
    return int(math.floor(float(np.std(arr, ddof=0))))


def summarize(xs: Sequence[int]) -> StreakSummary | None:
    if len(xs) == 0:
        return None
    return StreakSummary(average=average(xs), best=best(xs), deviation=deviation(xs))


# ── PROGRESS ANALYTICS ──────────────────────────────────────────────────────
# Inputs are history logs: newest first.


def times(results: Sequence["TrialResult"]) -> list[int]:
    return [r.time_ms for r in results]


def last_n_delta(results: Sequence["TrialResult"], n: int = config.LAST_N_WINDOW) -> int:
    """Average of the newest n results minus the overall average (0 if fewer than n)."""
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    if len(results) < n:
        return 0
    all_times = times(results)
    return average(all_times[:n]) - average(all_times)


def history_frame(results: Sequence["TrialResult"]) -> pd.DataFrame:
    """One row per result, columns as in config.EXPORT_COLUMNS."""
    rows = [
        {
            "time_ms": r.time_ms,
            "timestamp": r.timestamp,
            "mode": r.mode.value,
            "delay_seconds": r.delay_seconds,
            "countdown_shown": r.countdown_shown,
            "vibration_used": r.vibration_used,
            "theme": r.theme,
            "streak_index": r.streak_index,
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=config.EXPORT_COLUMNS)


def daily_averages(results: Sequence["TrialResult"], tz: tzinfo | None = None) -> pd.DataFrame:
    """Mean reaction time per calendar day in tz (local time by default), oldest day first.

    Columns: date (datetime.date), avg_ms (float), n (int).
    """
    df = history_frame(results)
    if df.empty:
        return pd.DataFrame({"date": [], "avg_ms": [], "n": []})
    df["date"] = df["timestamp"].map(lambda ts: ts.astimezone(tz).date())
    grouped = df.groupby("date")["time_ms"].agg(["mean", "count"]).sort_index()
    return pd.DataFrame({
        "date": list(grouped.index),
        "avg_ms": grouped["mean"].astype(float).to_list(),
        "n": grouped["count"].astype(int).to_list(),
    })


def fastest_weekday(results: Sequence["TrialResult"], tz: tzinfo | None = None) -> str | None:
    """Weekday name (e.g. "Monday") in tz (local by default) of the newest result holding the best time."""
    fastest = best(times(results))
    if fastest is None:
        return None
    entry = next(r for r in results if r.time_ms == fastest)
    return entry.timestamp.astimezone(tz).strftime("%A")
