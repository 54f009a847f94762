"""JSON and JSON-Lines output formatting."""
from __future__ import annotations

import json
from typing import Dict, List

from vtk_scan.scan_core.models import STATUS_CLEAN, STATUS_INFECTED, Lockfile, ScanResult

STATUS_ERROR = "ERROR"


def result_to_dict(result: ScanResult) -> Dict[str, object]:
    """Single-object report for a non-recursive scan."""
    return {
        "scanned_path": str(result.scanned_path),
        "status": result.status,
        "lockfiles": [str(lockfile.path) for lockfile in result.lockfiles],
        "compromised_packages": [finding.to_dict() for finding in result.compromised],
        "backdoors": [finding.to_dict() for finding in result.backdoors],
        "warnings": [warning.message for warning in result.warnings],
    }


def lockfile_record(result: ScanResult, lockfile: Lockfile) -> Dict[str, object]:
    hits = result.compromised_in(lockfile)
    if lockfile.error:
        status = STATUS_ERROR
    else:
        status = STATUS_INFECTED if hits else STATUS_CLEAN
    return {
        "type": "lockfile",
        "lockfile": str(lockfile.path),
        "format": lockfile.format,
        "packages_scanned": lockfile.package_count,
        "compromised_packages": [str(hit.package) for hit in hits],
        "status": status,
        "error": lockfile.error,
    }


def summary_record(result: ScanResult) -> Dict[str, object]:
    return {
        "type": "summary",
        "scanned_path": str(result.scanned_path),
        "lockfiles_scanned": len(result.lockfiles),
        "packages_scanned": sum(lockfile.package_count for lockfile in result.lockfiles),
        "compromised_count": len(result.compromised),
        "backdoor_count": len(result.backdoors),
        "warning_count": len(result.warnings),
        "backdoors": [finding.to_dict() for finding in result.backdoors],
        "warnings": [warning.message for warning in result.warnings],
        "status": result.status,
    }


def result_to_json_lines(result: ScanResult) -> List[str]:
    """One line per lockfile plus a trailing summary (recursive scans)."""
    lines = [json.dumps(lockfile_record(result, lockfile)) for lockfile in result.lockfiles]
    lines.append(json.dumps(summary_record(result)))
    return lines


def print_json_output(result: ScanResult, recursive: bool = False) -> None:
    """Print the scan result as JSON, or JSON-Lines when recursive."""
    if recursive:
        for line in result_to_json_lines(result):
            print(line)
    else:
        print(json.dumps(result_to_dict(result), indent=2))
