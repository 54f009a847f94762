"""Human-readable scan report."""
from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Sequence

from vtk_scan.scan_core.config import PLAYBOOK_URL
from vtk_scan.scan_core.models import STATUS_CLEAN, CompromisedPackage, ScanResult
from vtk_scan.scan_core.reporting.formatters import Colors, Emojis, format_status
from vtk_scan.scan_core.utils import resolve_relative_path


def tree_lines(items: Sequence[str], indent: str = "  ") -> List[str]:
    """Prefix items with box-drawing branches."""
    lines = []
    for index, item in enumerate(items):
        branch = "└─" if index == len(items) - 1 else "├─"
        lines.append(f"{indent}{branch} {item}")
    return lines


def print_lockfiles(result: ScanResult) -> None:
    """Print the lockfile inventory (verbose mode)."""
    print(f"\n{Emojis.get(Emojis.SEARCH)}Lockfiles scanned: {len(result.lockfiles)}")
    entries = []
    for lockfile in result.lockfiles:
        location = resolve_relative_path(lockfile.path, result.scanned_path)
        if lockfile.error:
            entries.append(f"{location} (unparsable: {lockfile.error})")
        else:
            entries.append(f"{location} ({lockfile.format}, {lockfile.package_count} packages)")
    for line in tree_lines(entries):
        print(line)


def print_compromised(result: ScanResult) -> None:
    """Print compromised packages grouped by lockfile."""
    findings = result.compromised
    if not findings:
        return
    header = f"{Emojis.get(Emojis.CRITICAL)}COMPROMISED PACKAGES FOUND ({len(findings)})"
    print(f"\n{Colors.colorize(header, Colors.RED + Colors.BOLD)}")

    grouped: Dict[Path, List[CompromisedPackage]] = OrderedDict()
    for finding in findings:
        grouped.setdefault(finding.lockfile_path, []).append(finding)

    for lockfile_path, hits in grouped.items():
        print(f"  {Emojis.get(Emojis.PACKAGE)}{resolve_relative_path(lockfile_path, result.scanned_path)}")
        packages = [Colors.colorize(str(hit.package), Colors.YELLOW) for hit in hits]
        for line in tree_lines(packages, indent="    "):
            print(line)


def print_backdoors(result: ScanResult) -> None:
    """Print backdoor workflow findings."""
    findings = result.backdoors
    if not findings:
        return
    header = f"{Emojis.get(Emojis.WARNING)}BACKDOOR WORKFLOWS FOUND ({len(findings)})"
    print(f"\n{Colors.colorize(header, Colors.RED + Colors.BOLD)}")
    entries = [
        f"{Emojis.get(Emojis.WORKFLOW)}{resolve_relative_path(finding.file_path, result.scanned_path)}"
        f" ({finding.kind})"
        for finding in findings
    ]
    for line in tree_lines(entries):
        print(line)


def print_warnings(result: ScanResult) -> None:
    if not result.warnings:
        return
    print(f"\n{Colors.colorize('Warnings:', Colors.YELLOW)}")
    for line in tree_lines([warning.message for warning in result.warnings]):
        print(line)


def print_text_report(result: ScanResult, verbose: bool = False) -> None:
    """Print the full report: banner, findings, status and playbook link."""
    print(f"Scanning: {result.scanned_path}")
    if verbose and result.lockfiles:
        print_lockfiles(result)
    print_compromised(result)
    print_backdoors(result)
    print_warnings(result)

    print(f"\nStatus: {format_status(result.status)}")
    if result.status != STATUS_CLEAN:
        print(f"Follow the incident response playbook: {PLAYBOOK_URL}")
