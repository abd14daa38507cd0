"""Command-line entry point for gigmatch."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from gigmatch.config import AppConfig, ConfigurationError, EnvironmentConfig, load_config
from gigmatch.domain.models import MatchResult, SavedQuery
from gigmatch.logging import get_logger
from gigmatch.logging.config import configure_logging
from gigmatch.registry import InvalidQueryError, SavedQueryNotFoundError
from gigmatch.scheduler import SchedulerService
from gigmatch.service import MarketplaceService, SearchFilters, build_service
from gigmatch.utils.text import rate_label

logger = get_logger(__name__, component="cli")

# Commands that hand notifications to SMTP
SMTP_COMMANDS = {"dispatch", "daemon"}


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str], require_smtp: bool = False
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Log level priority: CLI flag, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path, require_smtp=require_smtp)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gigmatch",
        description="gigmatch - listing search, saved-search alerts and notification delivery",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search listings with a free-text query")
    search.add_argument("query", help="Natural-language query, e.g. 'react developer remote'")
    search.add_argument("--kind", default="jobs", help="jobs, talent, seeking_help or seeking_work")
    search.add_argument("--user", default=None, help="Searching user id (own listings excluded)")
    search.add_argument("--skills", default="", help="Comma-separated skills filter")
    search.add_argument("--rate-max", type=int, default=None, help="Maximum acceptable minimum rate")
    search.add_argument("--remote-only", action="store_true", help="Only remote listings")

    saved = commands.add_parser("saved", help="Manage saved searches")
    saved_commands = saved.add_subparsers(dest="saved_command", required=True)

    saved_list = saved_commands.add_parser("list", help="List a user's saved searches")
    saved_list.add_argument("--user", required=True)
    saved_list.add_argument("--all", action="store_true", help="Include inactive saved searches")

    saved_create = saved_commands.add_parser("create", help="Save a search")
    saved_create.add_argument("--user", required=True)
    saved_create.add_argument("--name", required=True)
    saved_create.add_argument("--kind", default="jobs")
    saved_create.add_argument("--query", default=None)
    saved_create.add_argument("--skills", default="")
    saved_create.add_argument("--rate-min", type=int, default=None)
    saved_create.add_argument("--rate-max", type=int, default=None)
    saved_create.add_argument("--remote-only", action="store_true")
    saved_create.add_argument("--location", default=None)
    saved_create.add_argument(
        "--no-email", action="store_true", help="Evaluate without queueing email alerts"
    )

    for name, help_text in (("run", "Run a saved search now"), ("deactivate", "Deactivate a saved search")):
        sub = saved_commands.add_parser(name, help=help_text)
        sub.add_argument("--user", required=True)
        sub.add_argument("saved_query_id")

    commands.add_parser("sweep", help="Evaluate all active saved searches once")

    dispatch = commands.add_parser("dispatch", help="Deliver pending notifications once")
    dispatch.add_argument("--limit", type=int, default=None)

    expiring = commands.add_parser("expiring", help="Queue notices for listings about to expire")
    expiring.add_argument("--days", type=int, default=None)

    commands.add_parser("daemon", help="Run sweeps and dispatch on the configured interval")

    return parser


def format_results(results: List[MatchResult]) -> str:
    if not results:
        return "No matching listings."

    lines = []
    for position, result in enumerate(results, 1):
        listing = result.listing
        where = "remote" if listing.remote else (listing.location or "on-site")
        lines.append(
            f"{position}. [{result.score:.2f}] {listing.title} "
            f"({rate_label(listing.rate_min, listing.rate_max)}, {where}) id={listing.id}"
        )
        for reason in result.reasons:
            lines.append(f"     {reason}")
    return "\n".join(lines)


def format_saved_query(saved_query: SavedQuery) -> str:
    status = "active" if saved_query.active else "inactive"
    skills = ", ".join(saved_query.skills) or "-"
    return (
        f"{saved_query.id}  {saved_query.name} [{saved_query.kind.value}, {status}] "
        f"query={saved_query.query or '-'} skills={skills}"
    )


def run_alert_cycle(service: MarketplaceService) -> None:
    """One daemon tick: sweep saved searches, queue expiry notices, deliver."""
    summary = service.sweep_alerts()
    if summary.skipped:
        return

    service.queue_expiry_notices()

    if service.dispatcher is not None:
        report = service.dispatch_notifications()
        logger.info(
            f"Alert cycle complete: {summary.notifications_created} queued, {report.sent} sent",
            extra={
                "event": "cycle.completed",
                "queued": summary.notifications_created,
                "sent": report.sent,
                "delivery_errors": len(report.errors),
            },
        )


def run_command(args: argparse.Namespace, service: MarketplaceService, app_config: AppConfig) -> int:
    """Execute one CLI command and return the exit code."""
    if args.command == "search":
        skills = [s for s in args.skills.split(",") if s.strip()]
        outcome = service.search(
            args.query,
            args.kind,
            caller_id=args.user,
            filters=SearchFilters(skills=skills, rate_max=args.rate_max, remote_only=args.remote_only),
        )
        print(format_results(outcome.results))
        if outcome.degraded:
            print("(ranking service unavailable; showing keyword matches)", file=sys.stderr)
        return 0

    if args.command == "saved":
        return run_saved_command(args, service)

    if args.command == "sweep":
        summary = service.sweep_alerts()
        print(
            f"Evaluated {summary.queries_evaluated} saved searches: "
            f"{summary.total_matched} matches, {summary.notifications_created} new notifications, "
            f"{summary.duplicates_skipped} already notified"
        )
        for error in summary.errors:
            print(f"  error: {error}", file=sys.stderr)
        return 1 if summary.had_errors else 0

    if args.command == "dispatch":
        report = service.dispatch_notifications(args.limit)
        print(
            f"Sent {report.sent} of {report.fetched} notifications, "
            f"{report.failed_permanently} failed permanently"
        )
        for error in report.errors:
            print(f"  error: {error}", file=sys.stderr)
        return 1 if report.had_errors else 0

    if args.command == "expiring":
        expiry = service.queue_expiry_notices(args.days)
        print(
            f"{expiry.expiring_count} listings expiring, {expiry.notified_count} notices queued"
        )
        for error in expiry.errors:
            print(f"  error: {error}", file=sys.stderr)
        return 1 if expiry.had_errors else 0

    if args.command == "daemon":
        return run_daemon(service, app_config)

    raise ValueError(f"Unknown command: {args.command}")


def run_saved_command(args: argparse.Namespace, service: MarketplaceService) -> int:
    try:
        if args.saved_command == "list":
            saved_queries = service.list_saved_searches(args.user, include_inactive=args.all)
            if not saved_queries:
                print("No saved searches.")
            for saved_query in saved_queries:
                print(format_saved_query(saved_query))

        elif args.saved_command == "create":
            created = service.save_search(
                args.user,
                {
                    "name": args.name,
                    "kind": args.kind,
                    "query": args.query,
                    "skills": args.skills,
                    "rate_min": args.rate_min,
                    "rate_max": args.rate_max,
                    "remote_only": args.remote_only,
                    "location": args.location,
                    "notify_by_email": not args.no_email,
                },
            )
            print(f"Saved search created: {format_saved_query(created)}")

        elif args.saved_command == "run":
            print(format_results(service.run_saved_search(args.user, args.saved_query_id)))

        elif args.saved_command == "deactivate":
            deactivated = service.deactivate_saved_search(args.user, args.saved_query_id)
            print(f"Saved search deactivated: {format_saved_query(deactivated)}")

    except (InvalidQueryError, SavedQueryNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    return 0


def run_daemon(service: MarketplaceService, app_config: AppConfig) -> int:
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        cycle_callable=lambda: run_alert_cycle(service),
        interval_seconds=app_config.alerts.sweep_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info("Scheduler started. Press Ctrl+C to stop", extra={"event": "service.daemon_mode.started"})

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})
        scheduler_service.shutdown(wait=False)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    service = None

    try:
        app_config, env_config = load_runtime_config(
            args.config, args.log_level, require_smtp=args.command in SMTP_COMMANDS
        )
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "gigmatch starting",
            extra={"event": "service.starting", "command": args.command, "log_level": env_config.log_level},
        )

        service = build_service(app_config, env_config)
        return run_command(args, service, app_config)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.failed", "error_type": type(e).__name__, "error": str(e)},
            exc_info=True,
        )
        return 1
    finally:
        if service is not None:
            service.database.close()
            logger.info(
                "gigmatch stopped",
                extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
            )


if __name__ == "__main__":
    sys.exit(main())
