#!/usr/bin/env python3
"""
linerails CLI - Entry point for pip-installed package.

Handles config discovery, logging setup, diff scoping and exit codes,
and delegates the scan itself to scanner.run_scan.

Exit codes: 0 clean (warnings allowed), 1 error-severity violations,
2 the scan could not run.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .config import CONFIG_ENV_VAR, find_config
from .errors import LinerailsError
from .scanner import filter_to_diff, run_scan
from .scanner_cli import REPORTERS
from .scanner_git import GitClient, detect_base_ref, diff_info
from .scanner_types import NC, RED

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV_VAR = "LINERAILS_LOG_LEVEL"

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_ERROR = 2


class _StdoutHandler(logging.Handler):
    """Writes to the *current* sys.stdout, resolved at emit time."""

    def emit(self, record):
        try:
            sys.stdout.write(self.format(record) + "\n")
            sys.stdout.flush()
        except Exception:
            self.handleError(record)


def setup_logging() -> None:
    """Configure the linerails root logger once (level from $LINERAILS_LOG_LEVEL)."""
    root = logging.getLogger("linerails")
    if root.handlers:
        return

    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    handler = _StdoutHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.propagate = False


def _resolve_config(args) -> Path | None:
    if args.config:
        return Path(args.config)
    return find_config()


def run_scan_command(args) -> int:
    """Run ``linerails scan`` and return the exit code."""
    config_path = _resolve_config(args)
    if config_path is None:
        logger.error(
            f"{RED}error{NC}: no linerails.yaml found "
            f"(pass --config or set {CONFIG_ENV_VAR})"
        )
        return EXIT_ERROR

    try:
        result = run_scan(config_path, args.paths)
        if args.diff is not None:
            base_ref = args.diff or detect_base_ref()
            client = GitClient()
            diff = diff_info(base_ref, client)
            result = filter_to_diff(result, diff, client.toplevel())
    except LinerailsError as e:
        logger.error(f"{RED}error{NC}: {e}")
        return EXIT_ERROR

    REPORTERS[args.format](result)
    return EXIT_VIOLATIONS if result.errors else EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linerails",
        description="linerails - pattern guardrails with ratchets and diff scoping",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  linerails scan                    Scan the current directory
  linerails scan src lib            Scan specific directories or files
  linerails scan --format json      Machine-readable output
  linerails scan --diff             Only report lines changed vs the CI base branch
  linerails scan --diff develop     Only report lines changed vs develop
        """,
    )
    parser.add_argument("--version", "-v", action="version", version=f"linerails {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    scan = subparsers.add_parser("scan", help="Scan files for rule violations")
    scan.add_argument("paths", nargs="*", default=["."], help="Files or directories (default: .)")
    scan.add_argument("--config", "-c", help="Path to linerails.yaml")
    scan.add_argument(
        "--format", "-f", choices=sorted(REPORTERS), default="pretty", help="Output format",
    )
    scan.add_argument(
        "--diff",
        nargs="?",
        const="",
        metavar="BASE",
        help="Only report violations on lines changed since BASE "
             "(default: detected from CI, else main)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()

    if args.command != "scan":
        parser.print_help()
        sys.exit(EXIT_ERROR)

    sys.exit(run_scan_command(args))


if __name__ == "__main__":
    main()
