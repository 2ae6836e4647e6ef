#!/usr/bin/env python3
"""
SPINWHEEL — Command Line

Usage:
    spinwheel spin
    spinwheel stats
    spinwheel history [--limit 20] [--clear]
    spinwheel config show
    spinwheel config set 200 --probability 0.5 --max-limit 10
    spinwheel config reset
    spinwheel simulate --rounds 10000 --seed 42
"""

import argparse
import json
import sys
from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from spinwheel.config.outcomes import config_to_json
from spinwheel.config.settings import Settings, setup_logging
from spinwheel.errors import ConfigValidationError
from spinwheel.service import build_context

console = Console()


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {number}")
    return number


def _cmd_spin(ctx, args) -> int:
    result = ctx.service.spin()
    if result.exhausted:
        console.print(f"[yellow]⚠️  {result.message}[/yellow]")
        return 1
    if result.conflict:
        console.print(f"[red]❌ {result.message}[/red]")
        return 1
    console.print(Panel(
        f"[bold]{result.outcome.label}[/bold]\n[dim]{result.record.id}[/dim]",
        title="🎡 Result", border_style="cyan",
    ))
    return 0


def _cmd_stats(ctx, args) -> int:
    stats = ctx.service.stats()
    table = Table(title=f"Spin stats — {stats['total_spins']} total spins")
    for col in ("Outcome", "Count", "Limit", "Remaining", "Weight", "Next-spin odds"):
        table.add_column(col, justify="left" if col == "Outcome" else "right")
    for o in stats["outcomes"]:
        table.add_row(
            f"[{o['color']}]●[/] {o['label']}",
            str(o["count"]), str(o["limit"]), str(o["remaining"]),
            f"{o['probability']:.2f}", f"{o['effective_probability'] * 100:.1f}%",
        )
    console.print(table)
    if stats["exhausted"]:
        console.print("[yellow]All limits reached.[/yellow]")
    return 0


def _cmd_history(ctx, args) -> int:
    if args.clear:
        ctx.history_store.clear_history()
        console.print("[green]✅ History cleared[/green]")
        return 0
    history = ctx.history_store.get_history()
    table = Table(title=f"History ({len(history)} spins, newest first)")
    table.add_column("Time")
    table.add_column("Outcome")
    table.add_column("Id", style="dim")
    for record in history[:args.limit]:
        when = datetime.fromtimestamp(record.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(when, record.outcome_id, record.id)
    console.print(table)
    return 0


def _cmd_config(ctx, args) -> int:
    store = ctx.config_store
    if args.action == "reset":
        store.reset_config()
        console.print("[green]✅ Config reset to defaults[/green]")
        return 0
    if args.action == "set":
        if args.outcome is None:
            console.print("[red]❌ config set needs an outcome id[/red]")
            return 2
        try:
            store.update_outcome(args.outcome, probability=args.probability, max_limit=args.max_limit)
        except ConfigValidationError as e:
            console.print(f"[red]❌ {e}[/red]")
            return 2
        console.print(f"[green]✅ Outcome {args.outcome} updated[/green]")
    console.print_json(json.dumps(config_to_json(store.load_config())))
    return 0


def _cmd_simulate(ctx, args) -> int:
    result = ctx.service.simulate(rounds=args.rounds, seed=args.seed)
    table = Table(title=f"Simulation — {result.spins_run:,}/{result.rounds_requested:,} spins (seed {result.seed})")
    table.add_column("Outcome")
    table.add_column("Wins", justify="right")
    table.add_column("Share", justify="right")
    for oid, n in result.tallies.items():
        table.add_row(oid, f"{n:,}", f"{result.distribution[oid] * 100:.2f}%")
    console.print(table)
    if result.exhausted_after is not None:
        console.print(f"[yellow]Limits exhausted after {result.exhausted_after:,} spins[/yellow]")
    return 0


COMMANDS = {
    "spin": _cmd_spin,
    "stats": _cmd_stats,
    "history": _cmd_history,
    "config": _cmd_config,
    "simulate": _cmd_simulate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spinwheel", description="Capped weighted spin wheel")
    parser.add_argument("--db", type=str, default=None, help="SQLite storage path")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("spin", help="Spin once and record the result")
    sub.add_parser("stats", help="Counts, limits and live odds")

    p_hist = sub.add_parser("history", help="Show or clear spin history")
    p_hist.add_argument("--limit", type=_non_negative_int, default=20)
    p_hist.add_argument("--clear", action="store_true")

    p_cfg = sub.add_parser("config", help="Show, edit or reset outcome config")
    p_cfg.add_argument("action", choices=["show", "set", "reset"])
    p_cfg.add_argument("outcome", nargs="?")
    p_cfg.add_argument("--probability", type=float)
    p_cfg.add_argument("--max-limit", type=int)

    p_sim = sub.add_parser("simulate", help="Preview outcomes without recording")
    p_sim.add_argument("--rounds", type=_non_negative_int, default=10_000)
    p_sim.add_argument("--seed", type=int, default=42)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    if args.db:
        settings.db_path = args.db
    setup_logging(settings.log_level)

    ctx = build_context(settings)
    try:
        return COMMANDS[args.command](ctx, args)
    finally:
        ctx.storage.close()


if __name__ == "__main__":
    sys.exit(main())
