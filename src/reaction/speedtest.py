"""
SpeedTest: the interface presentation code drives.

Wires a TrialStateMachine, a StreakController and a HistoryStore together and
exposes one observable state plus the current reaction time and streak summary.
"""
from __future__ import annotations

import enum
import random
from typing import Callable

from psychopy import logging

from reaction import stats
from reaction.recorder import HistoryStore, ResultMode
from reaction.scheduler import Scheduler
from reaction.session import TrialConfig
from reaction.stats import StreakSummary
from reaction.streak import StreakController, StreakState
from reaction.trial import TrialState, TrialStateMachine


class SpeedTestState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    WAITING = "waiting"
    SIGNALED = "signaled"
    MEASURED = "measured"
    STREAK_IN_PROGRESS = "streak_in_progress"
    STREAK_COMPLETE = "streak_complete"


class SpeedTest:
    def __init__(
        self,
        history: HistoryStore,
        scheduler: Scheduler,
        haptic: Callable[[], None] | None = None,
        rng: random.Random | None = None,
        trial_config: TrialConfig | None = None,
    ) -> None:
        self._history = history
        self._machine = TrialStateMachine(scheduler, haptic=haptic, rng=rng)
        self._streak = StreakController(self._machine, history)
        self._config = trial_config if trial_config is not None else TrialConfig()
        self._current_reaction_ms: int | None = None
        self._machine.on_measured(self._on_measured)

    # ── COMMANDS ─────────────────────────────────────────────────────────────

    def configure(self, trial_config: TrialConfig) -> None:
        """Set mode and flags for the next run; abandons any run in progress."""
        self.reset()
        self._config = trial_config
        logging.exp(
            f"Configured: delay={trial_config.delay_mode.value}  countdown={trial_config.show_countdown}  "
            f"vibration={trial_config.vibration_enabled}  theme={trial_config.theme}  "
            f"streak={trial_config.streak_mode}  streak_length={trial_config.streak_length}"
        )

    def start(self) -> None:
        self._current_reaction_ms = None
        if self._config.streak_mode:
            self._streak.start(self._config)
        else:
            self._streak.reset()
            self._machine.start(self._config)

    def record_tap(self) -> int | None:
        return self._machine.record_tap()

    def stop(self) -> None:
        """End a streak in progress (the way to finish an unbounded streak)."""
        self._streak.stop()

    def reset(self) -> None:
        self._streak.reset()
        self._current_reaction_ms = None

    # ── OBSERVABLE STATE ─────────────────────────────────────────────────────

    @property
    def config(self) -> TrialConfig:
        return self._config

    @property
    def state(self) -> SpeedTestState:
        if self._streak.state == StreakState.STREAK_IN_PROGRESS:
            return SpeedTestState.STREAK_IN_PROGRESS
        if self._streak.state == StreakState.STREAK_COMPLETE:
            return SpeedTestState.STREAK_COMPLETE
        return SpeedTestState(self._machine.state.value)

    @property
    def trial_state(self) -> TrialState:
        """State of the current trial, also while a streak is in progress."""
        return self._machine.state

    @property
    def current_reaction_ms(self) -> int | None:
        return self._current_reaction_ms

    @property
    def current_streak_summary(self) -> StreakSummary | None:
        return self._streak.summary

    @property
    def streak_results(self) -> list[int]:
        return self._streak.results

    @property
    def streak_index(self) -> int:
        return self._streak.index

    @property
    def history(self) -> HistoryStore:
        return self._history

    # Whole-history statistics
    @property
    def best_result(self) -> int | None:
        return self._history.best_time()

    @property
    def average_result(self) -> int | None:
        return stats.average(stats.times(self._history.load()))

    @property
    def deviation(self) -> int | None:
        return stats.deviation(stats.times(self._history.load()))

    def _on_measured(self, reaction_ms: int) -> None:
        self._current_reaction_ms = reaction_ms
        if self._config.streak_mode:
            return
        self._history.save_reaction(
            time_ms=reaction_ms,
            mode=ResultMode.NORMAL,
            delay_seconds=self._machine.delay_s or 0.0,
            countdown_shown=self._config.show_countdown,
            vibration_used=self._config.vibration_enabled,
            theme=self._config.theme,
        )
