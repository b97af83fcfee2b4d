"""CLI entry point for team-streaks administrative operations."""
import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from .config import load_config
from .main import StreakSyncApp
from .periods import Period
from .streak_engine import SyncOutcome


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Team Streaks — cross-device streak sync")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", help="Validate config and exit")
    sub.add_parser("seed", help="Create records for the configured member roster")

    p = sub.add_parser("active", help="Apply pending period resets for a member")
    p.add_argument("name")

    p = sub.add_parser("win", help="Record a win for a member")
    p.add_argument("name")

    p = sub.add_parser("reset", help="Force-evaluate one period's reset")
    p.add_argument("name")
    p.add_argument("--period", choices=[pd.value for pd in Period], default=Period.WEEKLY.value)

    p = sub.add_parser("finalize", help="Finalize a week's trophy streak")
    p.add_argument("name")
    p.add_argument("week_id")
    outcome = p.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--won", dest="did_win", action="store_true")
    outcome.add_argument("--lost", dest="did_win", action="store_false")

    p = sub.add_parser("cards", help="Fetch cards for the given names")
    p.add_argument("names", nargs="*")

    sub.add_parser("serve", help="Run the status endpoint until interrupted")
    return parser.parse_args(argv)


def resolve_config_path(explicit: str | None) -> str | None:
    if explicit:
        return explicit
    for candidate in ["/etc/team-streaks/config.yaml", "./config.yaml"]:
        if Path(candidate).exists():
            return candidate
    return None


def _print_outcome(outcome: SyncOutcome) -> int:
    payload = {
        "member": outcome.member,
        "result": outcome.result.value,
        "attempts": outcome.attempts,
        "state": outcome.state.to_dict() if outcome.state else None,
        "error": str(outcome.error) if outcome.error else None,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0 if outcome.ok else 1


async def _serve(app: StreakSyncApp) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    # Signal handling (Unix only; Windows uses KeyboardInterrupt)
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)
    await stop.wait()


async def run_command(args: argparse.Namespace, config_path: str) -> int:
    config = load_config(config_path)
    if args.command == "serve":
        config.status.enabled = True
    app = StreakSyncApp(config_path, config=config)

    await app.start()
    try:
        engine, repo = app.engine, app.repository
        if args.command == "seed":
            for name in app.config.members:
                created = await repo.ensure_member(name)
                print(f"{name}: {'created' if created else 'exists'}")
            return 0
        if args.command == "active":
            return _print_outcome(await engine.app_became_active(args.name))
        if args.command == "win":
            return _print_outcome(await engine.mark_win(args.name))
        if args.command == "reset":
            return _print_outcome(await engine.reset_period_if_needed(args.name, Period(args.period)))
        if args.command == "finalize":
            return _print_outcome(await engine.finalize_week(args.name, args.week_id, args.did_win))
        if args.command == "cards":
            cards = await app.coordinator.request_fetch(args.names, reason="cli")
            print(json.dumps([c.to_dict() for c in cards], indent=2, ensure_ascii=False))
            return 0
        if args.command == "serve":
            await _serve(app)
            return 0
        return 2
    finally:
        await app.stop()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    logger = logging.getLogger("streaks")

    config_path = resolve_config_path(args.config)
    if not config_path:
        logger.error("No config file found. Use --config or place config.yaml in CWD.")
        return 1

    if args.command == "validate":
        try:
            load_config(config_path)
            logger.info("Config is valid.")
        except Exception as e:
            logger.error("Config validation failed: %s", e)
            return 1
        return 0

    try:
        return asyncio.run(run_command(args, config_path))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
