"""
Trial state machine: countdown → delay → signal → measured tap.

Timing comes from an injected Scheduler; nothing here blocks, draws or writes
data.  Commands that a state does not accept are ignored.
"""
from __future__ import annotations

import enum
import random
from typing import Callable

from psychopy import logging

from reaction import config
from reaction.scheduler import ScheduledTask, Scheduler
from reaction.session import DelayMode, TrialConfig


class TrialState(str, enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    WAITING = "waiting"
    SIGNALED = "signaled"
    MEASURED = "measured"


def draw_delay(delay_mode: DelayMode, rng: random.Random) -> float:
    """Seconds to wait before the signal: uniform in [MIN, MAX) or the fixed delay."""
    if delay_mode == DelayMode.FIXED:
        return config.FIXED_DELAY_S
    span = config.RANDOM_DELAY_MAX_S - config.RANDOM_DELAY_MIN_S
    return config.RANDOM_DELAY_MIN_S + rng.random() * span


class TrialStateMachine:
    """Runs one reaction trial at a time.

    IDLE → ARMED → WAITING → SIGNALED → MEASURED, back to IDLE via reset().
    The machine owns at most one pending ScheduledTask; reset() and start()
    cancel it, so a stale countdown or delay can never fire into a newer trial.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        haptic: Callable[[], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._haptic = haptic
        self._rng = rng if rng is not None else random.Random()
        self._state = TrialState.IDLE
        self._config: TrialConfig | None = None
        self._pending: ScheduledTask | None = None
        self._signal_time: float | None = None
        self._delay_s: float | None = None
        self._reaction_ms: int | None = None
        self._state_listeners: list[Callable[[TrialState], None]] = []
        self._measured_listeners: list[Callable[[int], None]] = []

    # ── OBSERVABLE STATE ─────────────────────────────────────────────────────

    @property
    def state(self) -> TrialState:
        return self._state

    @property
    def config(self) -> TrialConfig | None:
        return self._config

    @property
    def signal_time(self) -> float | None:
        return self._signal_time

    @property
    def delay_s(self) -> float | None:
        return self._delay_s

    @property
    def reaction_ms(self) -> int | None:
        return self._reaction_ms

    @property
    def has_pending_timer(self) -> bool:
        return self._pending is not None

    def add_listener(self, callback: Callable[[TrialState], None]) -> None:
        """Call callback(state) after every transition."""
        self._state_listeners.append(callback)

    def on_measured(self, callback: Callable[[int], None]) -> None:
        """Call callback(reaction_ms) each time a tap is measured."""
        self._measured_listeners.append(callback)

    # ── COMMANDS ─────────────────────────────────────────────────────────────

    def start(self, trial_config: TrialConfig) -> None:
        """Begin a fresh trial, abandoning any trial still in flight."""
        if self._state != TrialState.IDLE:
            self.reset()
        self._config = trial_config
        self._set_state(TrialState.ARMED)
        if trial_config.show_countdown:
            logging.exp(f"Countdown {config.COUNTDOWN_S:.1f} s")
            self._pending = self._scheduler.schedule(config.COUNTDOWN_S, self._on_countdown_done)
        else:
            self._enter_waiting()

    def record_tap(self) -> int | None:
        """Measure the reaction if the signal is showing; otherwise ignore the tap."""
        if self._state != TrialState.SIGNALED:
            logging.debug(f"Tap ignored in state {self._state.value}")
            return None
        elapsed_s = self._scheduler.now() - self._signal_time
        reaction_ms = max(0, int(round(elapsed_s * 1000)))
        self._reaction_ms = reaction_ms
        self._set_state(TrialState.MEASURED)
        logging.data(f"Reaction: {reaction_ms} ms  (delay={self._delay_s:.3f} s)")
        for cb in list(self._measured_listeners):
            cb(reaction_ms)
        return reaction_ms

    def reset(self) -> None:
        """Cancel any pending timer and return to IDLE from any state."""
        self._scheduler.cancel(self._pending)
        self._pending = None
        self._signal_time = None
        self._delay_s = None
        self._reaction_ms = None
        if self._state != TrialState.IDLE:
            self._set_state(TrialState.IDLE)

    # ── TIMER CALLBACKS ──────────────────────────────────────────────────────

    def _on_countdown_done(self) -> None:
        self._pending = None
        self._enter_waiting()

    def _enter_waiting(self) -> None:
        self._delay_s = draw_delay(self._config.delay_mode, self._rng)
        self._set_state(TrialState.WAITING)
        logging.exp(f"Waiting {self._delay_s:.3f} s  mode={self._config.delay_mode.value}")
        self._pending = self._scheduler.schedule(self._delay_s, self._on_delay_done)

    def _on_delay_done(self) -> None:
        self._pending = None
        self._signal_time = self._scheduler.now()
        self._set_state(TrialState.SIGNALED)
        if self._config.vibration_enabled and self._haptic is not None:
            try:
                self._haptic()
            except Exception as exc:
                logging.warning(f"Haptic feedback failed: {exc!r}")

    def _set_state(self, state: TrialState) -> None:
        self._state = state
        for cb in list(self._state_listeners):
            cb(state)
