"""Lockfile parsers for npm, yarn, and pnpm."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from vtk_scan.scan_core.config import LOCKFILE_NAMES
from vtk_scan.scan_core.models import Lockfile, PackageIdentity
from vtk_scan.scan_core.utils import safe_walk

LOGGER = logging.getLogger("vtk")

FORMAT_NPM_V1 = "npm-v1"
FORMAT_NPM_V2 = "npm-v2/v3"
FORMAT_YARN = "yarn-v1"
FORMAT_PNPM = "pnpm"


class LockfileParseError(ValueError):
    """Raised when a strictly formatted lockfile cannot be decoded."""

    def __init__(self, path: Optional[Path], reason: str) -> None:
        self.path = path
        self.reason = reason
        location = f" {path}" if path else ""
        super().__init__(f"Failed to parse lockfile{location}: {reason}")


def _unique(packages: Iterable[PackageIdentity]) -> List[PackageIdentity]:
    seen = set()
    result: List[PackageIdentity] = []
    for package in packages:
        if package in seen:
            continue
        seen.add(package)
        result.append(package)
    return result


def load_npm_lock(text: str, path: Optional[Path] = None) -> Dict[str, object]:
    """Decode package-lock.json content, failing loudly on corruption."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LockfileParseError(path, str(exc)) from exc
    if not isinstance(data, dict):
        raise LockfileParseError(path, "top-level JSON value is not an object")
    return data


def npm_lock_format(data: Dict[str, object]) -> str:
    lockfile_version = data.get("lockfileVersion")
    if isinstance(data.get("packages"), dict):
        return FORMAT_NPM_V2
    if isinstance(lockfile_version, int) and lockfile_version >= 2:
        return FORMAT_NPM_V2
    return FORMAT_NPM_V1


def iter_npm_packages(data: Dict[str, object]) -> Iterator[PackageIdentity]:
    """Yield identities from both the ``packages`` and ``dependencies`` maps."""
    packages = data.get("packages")
    if isinstance(packages, dict):
        for pkg_path, meta in packages.items():
            if not pkg_path or not isinstance(meta, dict):
                continue
            version = meta.get("version")
            if not version:
                continue
            name = pkg_path[len("node_modules/"):] if pkg_path.startswith("node_modules/") else pkg_path
            yield PackageIdentity(name, str(version))

    def walk_dependencies(deps: Dict[str, object], prefix: str) -> Iterator[PackageIdentity]:
        for name, meta in deps.items():
            if not isinstance(meta, dict) or not meta.get("version"):
                continue
            full_name = f"{prefix}/{name}" if prefix else name
            yield PackageIdentity(full_name, str(meta["version"]))

            nested = meta.get("dependencies")
            if isinstance(nested, dict):
                yield from walk_dependencies(nested, full_name)

    dependencies = data.get("dependencies")
    if isinstance(dependencies, dict):
        yield from walk_dependencies(dependencies, "")


def parse_npm_lock(text: str, path: Optional[Path] = None) -> List[PackageIdentity]:
    """Parse package-lock.json (v1 ``dependencies``, v2/v3 ``packages``)."""
    return _unique(iter_npm_packages(load_npm_lock(text, path)))


YARN_VERSION_PATTERN = re.compile(r'^\s+version\s+["\']?([^"\'\s]+)["\']?')


def descriptor_to_package(descriptor: str) -> str:
    """Extract package name from yarn descriptor."""
    descriptor = descriptor.strip().strip('"\'')
    at_index = descriptor.find("@", 1 if descriptor.startswith("@") else 0)
    if at_index == -1:
        return descriptor
    return descriptor[:at_index]


def parse_yarn_lock(text: str) -> List[PackageIdentity]:
    """Parse yarn.lock (v1) content.

    Only the first ``version`` line below a declaration header counts; stray
    version lines without a pending declaration are ignored.
    """
    packages: List[PackageIdentity] = []
    current_package: Optional[str] = None

    for raw in text.splitlines():
        if not raw.strip() or raw.lstrip().startswith("#"):
            continue
        if not raw[0].isspace():
            header = raw.rstrip()
            if header.endswith(":") and "@" in header:
                first = header[:-1].split(",")[0]
                current_package = descriptor_to_package(first) or None
            else:
                current_package = None
            continue

        match = YARN_VERSION_PATTERN.match(raw)
        if match and current_package:
            packages.append(PackageIdentity(current_package, match.group(1)))
            current_package = None

    return _unique(packages)


PNPM_TOP_LEVEL_KEY = re.compile(r"^[\w-]+:")
PNPM_PACKAGE_PATTERN = re.compile(r"""^ {2}['"]?/?(@?[^@:'"\s(]+)@([^:'"\s]+)['"]?:""")
PNPM_LEGACY_PATTERN = re.compile(r"""^ {2}['"]?/((?:@[^/\s]+/)?[^/@:'"\s]+)/(\d[^/:'"\s]*)['"]?:""")


def parse_pnpm_lock(text: str) -> List[PackageIdentity]:
    """Parse pnpm-lock.yaml content by scanning its ``packages:`` section."""
    packages: List[PackageIdentity] = []
    in_packages = False

    for line in text.splitlines():
        if line.startswith("packages:"):
            in_packages = True
            continue
        if in_packages and PNPM_TOP_LEVEL_KEY.match(line):
            in_packages = False
            continue
        if not in_packages:
            continue

        match = PNPM_LEGACY_PATTERN.match(line) or PNPM_PACKAGE_PATTERN.match(line)
        if not match:
            continue

        name = match.group(1)
        # peer suffixes: 1.0.0(react@18.2.0) or legacy 1.0.0_react@18.2.0
        version = match.group(2).split("(", 1)[0].split("_", 1)[0]
        if version:
            packages.append(PackageIdentity(name, version))

    return _unique(packages)


TEXT_PARSERS: Dict[str, Callable[[str], List[PackageIdentity]]] = {
    "yarn.lock": parse_yarn_lock,
    "pnpm-lock.yaml": parse_pnpm_lock,
}

TEXT_FORMATS = {
    "yarn.lock": FORMAT_YARN,
    "pnpm-lock.yaml": FORMAT_PNPM,
}


def load_lockfile(path: Path) -> Lockfile:
    """Read and parse a lockfile, inferring its format from the basename.

    Unknown filenames produce an empty lockfile with format ``unknown``.
    """
    path = Path(path)
    name = path.name
    if name not in LOCKFILE_NAMES or not path.is_file():
        return Lockfile(path=path, format="unknown")

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise LockfileParseError(path, f"unreadable ({exc.strerror or exc})") from exc
    if name == "package-lock.json":
        data = load_npm_lock(text, path)
        packages = _unique(iter_npm_packages(data))
        LOGGER.debug("Parsed %s: %s packages", path, len(packages))
        return Lockfile(path=path, format=npm_lock_format(data), packages=tuple(packages))

    packages = TEXT_PARSERS[name](text)
    LOGGER.debug("Parsed %s: %s packages", path, len(packages))
    return Lockfile(path=path, format=TEXT_FORMATS[name], packages=tuple(packages))


def parse_lockfile(path: Path) -> List[PackageIdentity]:
    """Return the package identities declared by a lockfile."""
    return list(load_lockfile(path).packages)


def find_lockfiles(directory: Path, recursive: bool = False, max_depth: Optional[int] = None) -> List[Path]:
    """Locate lockfiles in ``directory`` (and below it when recursive)."""
    directory = Path(directory)
    if not recursive:
        return [directory / name for name in LOCKFILE_NAMES if (directory / name).is_file()]
    return sorted(
        current / filename
        for current, filenames in safe_walk(directory, max_depth)
        for filename in filenames
        if filename in LOCKFILE_NAMES
    )
