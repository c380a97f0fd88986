"""
Streak controller: back-to-back trials on one TrialStateMachine, summarised and
saved to history when the streak ends.
"""
from __future__ import annotations

import enum

from psychopy import logging

from reaction import stats
from reaction.recorder import HistoryStore, ResultMode
from reaction.session import TrialConfig
from reaction.stats import StreakSummary
from reaction.trial import TrialState, TrialStateMachine


class StreakState(str, enum.Enum):
    IDLE = "idle"
    STREAK_IN_PROGRESS = "streak_in_progress"
    STREAK_COMPLETE = "streak_complete"


class StreakController:
    """
    Runs config.streak_length trials (unbounded when <= 0) and finalizes.

    Trial i+1 is armed only from the MEASURED callback of trial i.  Unbounded
    streaks end only through stop().
    """

    def __init__(self, machine: TrialStateMachine, history: HistoryStore) -> None:
        self._machine = machine
        self._history = history
        self._config: TrialConfig | None = None
        self._state = StreakState.IDLE
        self._results: list[int] = []
        self._index = 0
        self._delays: list[float] = []
        self._summary: StreakSummary | None = None
        machine.on_measured(self._on_measured)

    @property
    def state(self) -> StreakState:
        return self._state

    @property
    def results(self) -> list[int]:
        return list(self._results)

    @property
    def index(self) -> int:
        return self._index

    @property
    def summary(self) -> StreakSummary | None:
        return self._summary

    @property
    def machine(self) -> TrialStateMachine:
        return self._machine

    def start(self, trial_config: TrialConfig) -> None:
        self.reset()
        self._config = trial_config
        self._state = StreakState.STREAK_IN_PROGRESS
        length = "unbounded" if trial_config.unbounded else str(trial_config.streak_length)
        logging.exp(f"Streak started: length={length}")
        self._machine.start(trial_config)

    def stop(self) -> None:
        """Finish the streak now, discarding any trial still in flight."""
        if self._state != StreakState.STREAK_IN_PROGRESS:
            logging.debug(f"Streak stop ignored in state {self._state.value}")
            return
        if self._machine.state != TrialState.IDLE:
            logging.exp(f"Streak stopped: discarding trial in state {self._machine.state.value}")
        self._machine.reset()
        if self._results:
            self._finalize()
        else:
            self.reset()

    def reset(self) -> None:
        self._machine.reset()
        self._state = StreakState.IDLE
        self._results = []
        self._delays = []
        self._index = 0
        self._summary = None

    def _on_measured(self, reaction_ms: int) -> None:
        if self._state != StreakState.STREAK_IN_PROGRESS:
            return
        self._results.append(reaction_ms)
        self._delays.append(self._machine.delay_s or 0.0)
        self._index += 1
        logging.exp(f"Streak trial {self._index}: {reaction_ms} ms")
        if self._config.unbounded or self._index < self._config.streak_length:
            self._machine.start(self._config)
        else:
            self._finalize()

    def _finalize(self) -> None:
        self._summary = stats.summarize(self._results)
        self._state = StreakState.STREAK_COMPLETE
        logging.exp(
            f"Streak complete: n={len(self._results)}  avg={self._summary.average} ms  "
            f"best={self._summary.best} ms  sd={self._summary.deviation} ms"
        )
        failed = 0
        for idx, reaction_ms in enumerate(self._results):
            try:
                self._history.save_reaction(
                    time_ms=reaction_ms,
                    mode=ResultMode.STREAK,
                    delay_seconds=self._delays[idx],
                    countdown_shown=self._config.show_countdown,
                    vibration_used=self._config.vibration_enabled,
                    theme=self._config.theme,
                    streak_index=idx,
                    streak_scores=self._results,
                )
            except OSError as exc:
                failed += 1
                logging.warning(f"Could not save streak result {idx} ({reaction_ms} ms): {exc!r}")
        if failed:
            n = len(self._results)
            logging.warning(f"Streak only partly saved: {n - failed}/{n} results written")
