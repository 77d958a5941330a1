"""Command line entry point.

Usage:
    trivia-bots run [url] [limit] [--max-concurrent N] [--headless] [--team NAME]
    trivia-bots load-players [--limit N] [--team NAME]

Defaults come from the environment (GAME_URL, MAX_CONCURRENT_BOTS, HEADLESS,
PLAYERS_FILE, LOG_LEVEL) through Settings.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from trivia_bots.bot.coordinator import SessionCoordinator
from trivia_bots.config import Settings, get_settings
from trivia_bots.logging_config import bind_context, clear_context, configure_logging
from trivia_bots.persistence import build_result_sink
from trivia_bots.roster import ExcelRosterLoader
from trivia_bots.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trivia-bots",
        description="Run a fleet of simulated players against a live trivia game.",
    )
    parser.add_argument("--players-file", help="Roster workbook (.xlsx)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Play a game with bots loaded from the roster")
    run.add_argument("url", nargs="?", help="Game URL (defaults to GAME_URL)")
    run.add_argument("limit", nargs="?", type=int, default=DEFAULT_LIMIT, help="Number of bots")
    run.add_argument("--max-concurrent", type=int, help="Ceiling on simultaneously running bots")
    run.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run browsers without a window",
    )
    run.add_argument("--team", help="Only use players from this team")
    run.add_argument("--league", help="League label stored with the session")

    load = sub.add_parser("load-players", help="Show the players the roster would provide")
    load.add_argument("--limit", type=int, default=DEFAULT_LIMIT)
    load.add_argument("--team", help="Only list players from this team")

    return parser


def _install_signal_handlers(coordinator: SessionCoordinator) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info(f"[CLI] Received {sig.name}, stopping session")
        loop.create_task(coordinator.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl+C still raises KeyboardInterrupt
            pass


async def run_session(args: argparse.Namespace, settings: Settings) -> int:
    """Load the roster, play one session and report the outcome.

    Returns:
        Process exit code
    """
    loader = ExcelRosterLoader(args.players_file or settings.players_file)
    players = loader.load_profiles(limit=args.limit, team=args.team)
    if not players:
        logger.error("[CLI] No players loaded. Check the roster file.")
        return 1

    url = args.url or settings.game_url
    logger.info(f"[CLI] Starting {len(players)} bots against {url}")

    coordinator = SessionCoordinator(
        game_url=url,
        players=players,
        settings=settings,
        sink=build_result_sink(settings),
        max_concurrent=args.max_concurrent,
        headless=args.headless,
        league=args.league,
    )
    bind_context(session_id=coordinator.session_id)
    _install_signal_handlers(coordinator)

    try:
        record = await coordinator.start()
    except ConfigurationError as e:
        logger.error(f"[CLI] {e.message}")
        return 1
    except Exception as e:
        logger.exception(f"[CLI] Session failed: {e}")
        return 1
    finally:
        await coordinator.cleanup()
        clear_context()

    results = record.results
    logger.info(
        f"[CLI] Session {record.session_id} {record.status.value}: "
        f"{results.completed} completed, {results.failed} failed"
    )
    for profile_id, result in results.players.items():
        logger.info(
            f"[CLI]   {result.nickname or profile_id}: "
            f"{result.correct_answers}/{result.questions_answered} correct"
            + (f", rank #{result.final_rank}" if result.final_rank else "")
            + (f" ({result.error})" if result.error else "")
        )
    return 0


def list_players(args: argparse.Namespace, settings: Settings) -> int:
    loader = ExcelRosterLoader(args.players_file or settings.players_file)
    players = loader.load_profiles(limit=args.limit, team=args.team)
    if not players:
        print("No players found.")
        return 1

    print(f"{'ID':<20} {'Nickname':<16} {'Team':<20} {'Accuracy':>8}  Personality")
    for p in players:
        print(
            f"{p.bot_id[:20]:<20} {p.nickname[:16]:<16} {(p.team or '-')[:20]:<20} "
            f"{p.accuracy:>8.0%}  {p.personality}"
        )
    print(f"\n{len(players)} players")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        app_env=settings.app_env,
    )

    if args.command == "load-players":
        sys.exit(list_players(args, settings))

    try:
        code = asyncio.run(run_session(args, settings))
    except KeyboardInterrupt:
        logger.info("[CLI] Interrupted")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
