"""Repository scan orchestration: lockfiles, threat list and workflows."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import AbstractSet, List, Optional

from vtk_scan.scan_core.models import CompromisedPackage, Finding, Lockfile, ScanResult, ScanWarning
from vtk_scan.scan_core.scanners.lockfiles import LockfileParseError, find_lockfiles, load_lockfile
from vtk_scan.scan_core.scanners.workflows import detect_workflow_backdoors
from vtk_scan.scan_core.utils import safe_walk

LOGGER = logging.getLogger("vtk")

NO_LOCKFILES_MESSAGE = "No lockfiles found (package-lock.json, yarn.lock, pnpm-lock.yaml)"


def check_lockfile(lockfile: Lockfile, threat_list: AbstractSet[str]) -> List[CompromisedPackage]:
    """Return a finding for every lockfile package on the threat list."""
    return [
        CompromisedPackage(lockfile_path=lockfile.path, package=package)
        for package in lockfile.packages
        if str(package) in threat_list
    ]


def scan_repo(
    path: Path,
    threat_list: AbstractSet[str],
    recursive: bool = False,
    max_depth: Optional[int] = None,
) -> ScanResult:
    """Scan a directory for compromised packages and backdoor workflows.

    A lockfile that fails to parse aborts a single-directory scan; during a
    recursive scan it is recorded with its error and the walk continues.
    """
    root = Path(path)
    if not root.is_dir():
        raise NotADirectoryError(f"Directory not found: {root}")

    findings: List[Finding] = []
    lockfiles: List[Lockfile] = []

    lockfile_paths = find_lockfiles(root, recursive=recursive, max_depth=max_depth)
    if not lockfile_paths:
        findings.append(ScanWarning(NO_LOCKFILES_MESSAGE))

    for lockfile_path in lockfile_paths:
        try:
            lockfile = load_lockfile(lockfile_path)
        except LockfileParseError as exc:
            if not recursive:
                raise
            LOGGER.warning("%s", exc)
            lockfiles.append(Lockfile(path=lockfile_path, format="unknown", error=exc.reason))
            findings.append(ScanWarning(f"Skipped unparsable lockfile {lockfile_path}: {exc.reason}"))
            continue

        lockfiles.append(lockfile)
        hits = check_lockfile(lockfile, threat_list)
        if hits:
            LOGGER.debug("%s: %s compromised packages", lockfile_path, len(hits))
        findings.extend(hits)

    if recursive:
        for directory, _filenames in safe_walk(root, max_depth):
            findings.extend(detect_workflow_backdoors(directory))
    else:
        findings.extend(detect_workflow_backdoors(root))

    result = ScanResult(scanned_path=root, lockfiles=tuple(lockfiles), findings=tuple(findings))
    LOGGER.debug(
        "Scan of %s: %s lockfiles, %s compromised, %s backdoors -> %s",
        root,
        len(result.lockfiles),
        len(result.compromised),
        len(result.backdoors),
        result.status,
    )
    return result
