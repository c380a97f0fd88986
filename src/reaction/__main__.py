"""
Entry point: `python -m reaction` or `reaction-task` script.
Console front end over SpeedTest; press Enter when GO! appears.
"""
from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reaction-task", description="Reaction speed test")
    parser.add_argument("--data-dir", type=Path, default=None, help="settings/history directory")
    parser.set_defaults(fixed=False, streak=None)
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="run a single test or a streak")
    run.add_argument("--fixed", action="store_true", help="fixed 2 s delay instead of random 1-5 s")
    run.add_argument("--streak", type=int, default=None, metavar="N",
                     help="run a streak of N trials (0 = unbounded, stop with 'q')")

    sub.add_parser("history", help="list saved results")
    sub.add_parser("stats", help="best/average/deviation and progress insights")

    export = sub.add_parser("export", help="export history as CSV")
    export.add_argument("path", type=Path, nargs="?", default=None)

    settings = sub.add_parser("settings", help="show or change settings")
    settings.add_argument("--vibration", choices=["on", "off"])
    settings.add_argument("--countdown", choices=["on", "off"])
    settings.add_argument("--theme")

    sub.add_parser("clear", help="erase history")
    sub.add_parser("reset-all", help="erase history and restore default settings")
    return parser


def _flush_stdin() -> None:
    """Discard Enter presses made before the signal."""
    if sys.platform == "win32" or not sys.stdin.isatty():
        return
    import termios
    termios.tcflush(sys.stdin, termios.TCIFLUSH)


def run(argv: list[str] | None = None) -> None:
    from psychopy import core, logging
    from rich.console import Console
    from rich.table import Table
    import rich.box

    from reaction import config, recorder, scheduler, session, stats
    from reaction.session import DelayMode
    from reaction.speedtest import SpeedTest, SpeedTestState
    from reaction.trial import TrialState

    args = _build_parser().parse_args(argv)
    command = args.command or "run"

    # ── LOGGING ──────────────────────────────────────────────────────────────
    data_dir = session.make_data_dir(args.data_dir)
    logging.LogFile(str(data_dir / config.LOG_FILENAME), level=logging.EXP)
    logging.console.setLevel(logging.WARNING)  # rich handles terminal output

    rcon = Console(stderr=True)

    # ── STORES ───────────────────────────────────────────────────────────────
    store = session.open_store(data_dir)
    settings_store = session.SettingsStore(store)
    history = recorder.HistoryStore(store)

    def fmt(ms: int | None) -> str:
        return "—" if ms is None else f"{ms} ms"

    if command == "history":
        results = history.load()
        if not results:
            rcon.print("[dim]No results yet.[/dim]")
            return
        table = Table(box=rich.box.SIMPLE_HEAD)
        for col, justify in [("#", "right"), ("Time", "right"), ("Date", "left"), ("Mode", "left"),
                             ("Delay", "right"), ("Countdown", "left"), ("Vibration", "left"), ("Theme", "left")]:
            table.add_column(col, justify=justify)
        for i, r in enumerate(results, start=1):
            mode = r.mode.value
            if r.streak_index is not None:
                mode = f"streak {r.streak_index + 1}/{len(r.streak_scores)}"
            table.add_row(
                str(i), f"{r.time_ms} ms", r.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"), mode,
                f"{r.delay_seconds:.2f} s", "yes" if r.countdown_shown else "no",
                "yes" if r.vibration_used else "no", r.theme,
            )
        rcon.print(table)
        return

    if command == "stats":
        results = history.load()
        all_times = stats.times(results)
        last_n = all_times[: config.LAST_N_WINDOW]
        table = Table(box=rich.box.SIMPLE_HEAD)
        table.add_column("")
        table.add_column("Best", justify="right")
        table.add_column("Average", justify="right")
        table.add_column("Deviation", justify="right")
        table.add_row("All", fmt(stats.best(all_times)), fmt(stats.average(all_times)), fmt(stats.deviation(all_times)))
        table.add_row(f"Last {config.LAST_N_WINDOW}", fmt(stats.best(last_n)), fmt(stats.average(last_n)),
                      fmt(stats.deviation(last_n)))
        rcon.print(table)
        rcon.print(f"[bold]Total tests:[/bold] {len(results)}  [bold]Worst:[/bold] {fmt(stats.worst(all_times))}")
        if len(results) >= config.LAST_N_WINDOW:
            delta = stats.last_n_delta(results)
            direction = "above" if delta >= 0 else "below"
            rcon.print(f"Your last {config.LAST_N_WINDOW} attempts were {abs(delta)} ms {direction} your average.")
        weekday = stats.fastest_weekday(results)
        if weekday is not None:
            rcon.print(f"You're fastest on {weekday}.")
        for _, row in stats.daily_averages(results).iterrows():
            rcon.print(f"  {row['date']}: {row['avg_ms']:.0f} ms ({int(row['n'])} tests)")
        return

    if command == "export":
        path = args.path if args.path is not None else data_dir / config.EXPORT_FILENAME
        recorder.export_history_csv(history.load(), path)
        rcon.print(f"Exported to [cyan]{path}[/cyan]")
        return

    if command == "settings":
        current = settings_store.load()
        changes = {}
        if args.vibration is not None:
            changes["vibration_enabled"] = args.vibration == "on"
        if args.countdown is not None:
            changes["show_countdown"] = args.countdown == "on"
        if args.theme is not None:
            changes["button_theme"] = args.theme
        if changes:
            current = dataclasses.replace(current, **changes)
            try:
                settings_store.save(current)
            except ValueError as exc:
                rcon.print(f"[red]{exc}[/red]")
                sys.exit(2)
        rcon.print(
            f"vibration=[cyan]{current.vibration_enabled}[/cyan]  "
            f"countdown=[cyan]{current.show_countdown}[/cyan]  theme=[cyan]{current.button_theme}[/cyan]"
        )
        return

    if command == "clear":
        history.clear()
        rcon.print("History cleared.")
        return

    if command == "reset-all":
        session.reset_all_data(settings_store, history)
        rcon.print("Settings restored and history cleared.")
        return

    # ── RUN ──────────────────────────────────────────────────────────────────
    trial_config = session.TrialConfig.from_settings(
        settings_store.load(),
        delay_mode=DelayMode.FIXED if args.fixed else DelayMode.RANDOM,
        streak_mode=args.streak is not None,
        streak_length=args.streak if args.streak is not None else config.DEFAULT_STREAK_LENGTH,
    )
    clock_scheduler = scheduler.make_scheduler(virtual=False)
    test = SpeedTest(history, clock_scheduler, haptic=rcon.bell)
    test.configure(trial_config)
    test.start()

    while test.state not in (SpeedTestState.MEASURED, SpeedTestState.STREAK_COMPLETE, SpeedTestState.IDLE):
        shown = test.trial_state
        if shown == TrialState.ARMED:
            rcon.print(f"[bold]Get ready...[/bold] ({config.COUNTDOWN_S:.0f} s)")
        elif shown == TrialState.WAITING:
            rcon.print("[dim]Wait for it...[/dim]")
        while test.trial_state == shown and shown in (TrialState.ARMED, TrialState.WAITING):
            clock_scheduler.poll()
            core.wait(config.POLL_INTERVAL_S, hogCPUperiod=0)
        if test.trial_state != TrialState.SIGNALED:
            continue
        _flush_stdin()
        color = config.THEME_COLORS.get(trial_config.theme, "green")
        rcon.print(f"[bold {color}]GO![/bold {color}]  (press Enter)")
        line = sys.stdin.readline()
        reaction_ms = test.record_tap()
        if trial_config.streak_mode:
            rcon.print(f"Trial {test.streak_index}: [cyan]{fmt(reaction_ms)}[/cyan]")
            if line.strip().lower() == "q":
                test.stop()
        else:
            rcon.print(f"Reaction: [bold cyan]{fmt(reaction_ms)}[/bold cyan]")

    summary = test.current_streak_summary
    if summary is not None:
        rcon.print(
            f"\n[bold]Streak complete:[/bold] {len(test.streak_results)} trials  "
            f"avg=[cyan]{summary.average} ms[/cyan]  best=[cyan]{summary.best} ms[/cyan]  "
            f"deviation=[cyan]{summary.deviation} ms[/cyan]"
        )
    rcon.print(f"[bold]Best ever:[/bold] {fmt(test.best_result)}")
    logging.flush()


if __name__ == "__main__":
    run()
