"""Data models for lockfiles, findings and scan results."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Dict, Optional, Tuple, Union

STATUS_CLEAN = "CLEAN"
STATUS_WARNING = "WARNING"
STATUS_INFECTED = "INFECTED"

EXIT_CODES: Dict[str, int] = {
    STATUS_CLEAN: 0,
    STATUS_INFECTED: 1,
    STATUS_WARNING: 2,
}

DISCUSSION_BACKDOOR = "discussion_backdoor"
SECRETS_EXTRACTION = "secrets_extraction"


@dataclass(frozen=True)
class PackageIdentity:
    """A resolved package name and version as recorded in a lockfile."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"


@dataclass(frozen=True)
class Lockfile:
    """A lockfile discovered during a scan and the packages it declares."""

    path: Path
    format: str
    packages: Tuple[PackageIdentity, ...] = ()
    error: Optional[str] = None

    @property
    def package_count(self) -> int:
        return len(self.packages)


@dataclass(frozen=True)
class CompromisedPackage:
    """A lockfile entry present on the threat list."""

    category: ClassVar[str] = "compromised_package"

    lockfile_path: Path
    package: PackageIdentity

    def to_dict(self) -> Dict[str, str]:
        return {"package": str(self.package), "lockfile": str(self.lockfile_path)}


@dataclass(frozen=True)
class BackdoorWorkflow:
    """A CI workflow matching a known backdoor signature."""

    category: ClassVar[str] = "backdoor_workflow"

    file_path: Path
    kind: str  # discussion_backdoor, secrets_extraction

    def to_dict(self) -> Dict[str, str]:
        return {"file": str(self.file_path), "type": self.kind}


@dataclass(frozen=True)
class ScanWarning:
    """Informational finding that does not change the scan status."""

    category: ClassVar[str] = "warning"

    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"message": self.message}


Finding = Union[CompromisedPackage, BackdoorWorkflow, ScanWarning]


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning one directory; built once and never mutated."""

    scanned_path: Path
    lockfiles: Tuple[Lockfile, ...] = ()
    findings: Tuple[Finding, ...] = field(default_factory=tuple)

    @property
    def compromised(self) -> Tuple[CompromisedPackage, ...]:
        return tuple(f for f in self.findings if isinstance(f, CompromisedPackage))

    @property
    def backdoors(self) -> Tuple[BackdoorWorkflow, ...]:
        return tuple(f for f in self.findings if isinstance(f, BackdoorWorkflow))

    @property
    def warnings(self) -> Tuple[ScanWarning, ...]:
        return tuple(f for f in self.findings if isinstance(f, ScanWarning))

    @property
    def status(self) -> str:
        if self.compromised:
            return STATUS_INFECTED
        if self.backdoors:
            return STATUS_WARNING
        return STATUS_CLEAN

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    def compromised_in(self, lockfile: Lockfile) -> Tuple[CompromisedPackage, ...]:
        """Return the compromised package findings tied to one lockfile."""
        return tuple(f for f in self.compromised if f.lockfile_path == lockfile.path)
