"""CLI entry point: import, headers."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

from scripts.user_import.config import (
    DEFAULT_NUM_THREADS,
    DEFAULT_REJECTS_FILE,
    MAX_NUM_THREADS,
    MIN_NUM_THREADS,
    ConfigError,
    load_config,
)
from scripts.user_import.importer import ImportRunError, UserImporter
from scripts.user_import.logging_config import configure_logging
from scripts.user_import.records import ImportFileError
from scripts.user_import.transformer import SUPPORTED_HEADERS

logger = logging.getLogger("user_import.cli")

# argparse dest -> config field, for values passed on to load_config
CONFIG_OPTIONS = (
    "csv_file",
    "rejects_file",
    "environment_id",
    "population_id",
    "client_id",
    "client_secret",
    "auth_host",
    "platform_host",
    "force_password_change",
    "num_threads",
    "rate_per_second",
    "request_timeout",
    "encoding",
    "dry_run",
)


def _thread_count(raw: str) -> int:
    value = int(raw)
    if not MIN_NUM_THREADS <= value <= MAX_NUM_THREADS:
        raise argparse.ArgumentTypeError(
            f"must be between {MIN_NUM_THREADS} and {MAX_NUM_THREADS}"
        )
    return value


def cmd_import(args: argparse.Namespace) -> int:
    """Import users from the CSV file and write rejects."""
    overrides = {name: getattr(args, name, None) for name in CONFIG_OPTIONS}
    try:
        config = load_config(overrides)
        result = UserImporter(config).run()
    except (ConfigError, ImportFileError, ImportRunError) as exc:
        logger.error("Import aborted: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if result.rejects_file is not None:
        logger.info(
            "Rejected users were written to %s; correct them and re-run with --csv-file %s",
            result.rejects_file,
            result.rejects_file,
        )
    print(result.render_one_line())
    return 0


def cmd_headers(args: argparse.Namespace) -> int:
    """Print the CSV headers the importer understands."""
    print(",".join(SUPPORTED_HEADERS))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="user-import",
        description=(
            "Imports users into PingOne from a CSV file. Users that are rejected "
            "are written to a rejects CSV file that can be corrected and reprocessed."
        ),
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # import command
    imp = subparsers.add_parser("import", help="Import users from a CSV file")
    imp.add_argument("--csv-file", "-f", dest="csv_file",
                     help="Path to the CSV file with user data")
    imp.add_argument("--rejects-file", "-r", dest="rejects_file",
                     help=f"Where rejected lines are written (default: {DEFAULT_REJECTS_FILE})")
    imp.add_argument("--environment-id", "-e", dest="environment_id",
                     help="ID of the environment to import users into")
    imp.add_argument("--population-id", "-p", dest="population_id",
                     help="ID of the population to import users into")
    imp.add_argument("--client-id", "-c", dest="client_id",
                     help="ID of the PingOne worker application")
    imp.add_argument("--client-secret", "-s", dest="client_secret",
                     help="Secret of the worker application, or aws-secret:// / gcp-secret:// reference")
    imp.add_argument("--auth-host", "-a", dest="auth_host",
                     help="Auth host, e.g. auth.pingone.com")
    imp.add_argument("--platform-host", "-b", dest="platform_host",
                     help="Platform API host, e.g. api.pingone.com")
    imp.add_argument("--force-password-change", dest="force_password_change",
                     action="store_true", default=None,
                     help="Imported users must change their password on next login")
    imp.add_argument("--num-threads", "-n", dest="num_threads", type=_thread_count,
                     help=f"Concurrent import threads (default: {DEFAULT_NUM_THREADS}); "
                          "the request rate is capped regardless of thread count")
    imp.add_argument("--rate-per-second", "-i", dest="rate_per_second", type=int,
                     help=argparse.SUPPRESS)
    imp.add_argument("--timeout", dest="request_timeout", type=float,
                     help="Per-request timeout in seconds (default: 30)")
    imp.add_argument("--encoding", dest="encoding",
                     help="CSV file encoding (default: utf-8)")
    imp.add_argument("--dry-run", dest="dry_run", action="store_true",
                     help="Build and log payloads without calling PingOne")
    imp.set_defaults(func=cmd_import)

    # headers command
    headers = subparsers.add_parser("headers", help="List supported CSV headers")
    headers.set_defaults(func=cmd_headers)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
