"""Command-line entry point: run the API, the timeout supervisor, or one sweep."""

from __future__ import annotations

import argparse
import logging
import signal
import threading

import uvicorn

from arena.core.config import Settings
from arena.core.config import load_settings
from arena.core.logging_config import setup_logging
from arena.rooms.supervisor import TimeoutSupervisor
from arena.runtime import build_service

logger = logging.getLogger("arena.cli")


def _supervisor(settings: Settings, interval: float | None) -> TimeoutSupervisor:
    service, _ = build_service(settings)
    return TimeoutSupervisor(service, interval_seconds=interval or settings.arena_supervisor_interval_seconds)


def run_serve(settings: Settings, *, host: str | None, port: int | None) -> int:
    uvicorn.run(
        "arena.main:app",
        host=host or settings.arena_app_host,
        port=port or settings.arena_app_port,
        log_level=settings.arena_log_level.lower(),
    )
    return 0


def run_supervise(settings: Settings, *, interval: float | None) -> int:
    """Run the sweeper until SIGINT/SIGTERM; safe next to API workers and other sweepers."""
    supervisor = _supervisor(settings, interval)
    stop = threading.Event()

    def _request_stop(signum: int, _frame: object) -> None:
        logger.info("received signal %d, stopping", signum)
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    supervisor.run_forever(stop)
    return 0


def run_sweep(settings: Settings) -> int:
    expired = _supervisor(settings, None).scan_once()
    for room_id in expired:
        print(room_id)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ludo-arena", description="Ludo Arena match room service.")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API with the in-process supervisor.")
    serve.add_argument("--host", default=None, help="Bind address (default ARENA_APP_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default ARENA_APP_PORT).")

    supervise = commands.add_parser("supervise", help="Run the timeout supervisor as its own process.")
    supervise.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps (default ARENA_SUPERVISOR_INTERVAL_SECONDS).",
    )

    commands.add_parser("sweep", help="Expire due rooms once and print their ids.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    setup_logging(settings.arena_log_level, settings.arena_log_file)

    if args.command == "serve":
        return run_serve(settings, host=args.host, port=args.port)
    if args.command == "supervise":
        return run_supervise(settings, interval=args.interval)
    return run_sweep(settings)


if __name__ == "__main__":
    raise SystemExit(main())
