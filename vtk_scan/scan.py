#!/usr/bin/env python3
"""``vtk scan repo``: check a project for compromised npm packages.

Lockfiles (npm, yarn, pnpm) are matched against a cached threat list of
compromised ``name:version`` pairs, and GitHub workflows are inspected for
known backdoor signatures. Exit codes: 0 clean, 1 infected, 2 backdoor
warning, 3 when no threat list is available or a lockfile cannot be parsed.
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from vtk_scan.scan_core.config import DEFAULT_TIMEOUT, CacheConfig
from vtk_scan.scan_core.reporting.formatters import ColoredFormatter, configure_terminal
from vtk_scan.scan_core.reporting.json_output import print_json_output
from vtk_scan.scan_core.reporting.text import print_text_report
from vtk_scan.scan_core.scanner import scan_repo
from vtk_scan.scan_core.scanners.lockfiles import LockfileParseError
from vtk_scan.scan_core.threat_list import ThreatListCache, ThreatListError

LOGGER = logging.getLogger("vtk")

EXIT_DIRECTORY_NOT_FOUND = 1
EXIT_ERROR = 3


def setup_logging(level: str, log_dir: Optional[Path] = None, quiet: bool = False) -> Optional[Path]:
    """Initialise console and optional file logging for the current execution."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    LOGGER.handlers.clear()
    LOGGER.setLevel(logging.DEBUG)
    LOGGER.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.CRITICAL + 1 if quiet else numeric_level)
    console_handler.setFormatter(ColoredFormatter("%(levelname)s: %(message)s"))
    LOGGER.addHandler(console_handler)

    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"vtk_scan_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    LOGGER.addHandler(file_handler)
    return log_path


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vtk", description="Developer security tooling.")
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    scan_parser = commands.add_parser("scan", help="Security scanning commands.")
    scan_commands = scan_parser.add_subparsers(dest="scan_command", metavar="SCAN_COMMAND")
    scan_commands.required = True

    repo = scan_commands.add_parser(
        "repo",
        help="Scan a repository for compromised packages and backdoor workflows.",
        description=(
            "Scan lockfiles for compromised packages (Shai-Hulud supply-chain attack) "
            "and GitHub workflows for known backdoors."
        ),
    )
    repo.add_argument("path", nargs="?", default=".", help="Directory to scan (default: current directory).")
    repo.add_argument("-r", "--refresh", action="store_true", help="Force refresh of the compromised packages list.")
    output = repo.add_mutually_exclusive_group()
    output.add_argument("-j", "--json", action="store_true", dest="json_output", help="Emit results as JSON.")
    output.add_argument("-q", "--quiet", action="store_true", help="No output, exit code only.")
    repo.add_argument("-v", "--verbose", action="store_true", help="List every lockfile scanned and log debug detail.")
    repo.add_argument(
        "--recursive",
        action="store_true",
        help="Scan subdirectories for lockfiles and workflows (JSON output becomes JSON-Lines).",
    )
    repo.add_argument(
        "--depth",
        type=_non_negative_int,
        default=None,
        help="Maximum directory depth for --recursive (default: unlimited).",
    )
    repo.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"HTTP timeout for refreshing the package list in seconds (default: {DEFAULT_TIMEOUT}).",
    )
    repo.add_argument("--log-dir", help="Also write a timestamped log file to this directory.")
    repo.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log verbosity (default: INFO).",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def run_repo_scan(args: argparse.Namespace) -> int:
    target = Path(args.path).expanduser()
    if not target.is_dir():
        print(f"ERROR: Directory not found: {args.path}")
        return EXIT_DIRECTORY_NOT_FOUND
    target = target.resolve()

    log_level = "DEBUG" if args.verbose else args.log_level
    if args.json_output and not args.verbose:
        # keep stdout/stderr machine-readable
        log_level = "WARNING"
    log_dir = Path(args.log_dir).expanduser().resolve() if args.log_dir else None
    log_path = setup_logging(log_level, log_dir, quiet=args.quiet)
    if log_path:
        LOGGER.info("Detailed execution log: %s", log_path)
    configure_terminal()

    cache = ThreatListCache(CacheConfig.from_env(timeout=args.timeout))
    try:
        threat_list = cache.compromised_packages(refresh=args.refresh)
    except ThreatListError as exc:
        LOGGER.error("%s", exc)
        return EXIT_ERROR

    try:
        result = scan_repo(target, threat_list, recursive=args.recursive, max_depth=args.depth)
    except LockfileParseError as exc:
        LOGGER.error("%s", exc)
        return EXIT_ERROR

    if args.json_output:
        print_json_output(result, recursive=args.recursive)
    elif not args.quiet:
        print_text_report(result, verbose=args.verbose)

    LOGGER.debug("Exit status %s (%s)", result.exit_code, result.status)
    return result.exit_code


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    return run_repo_scan(args)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
