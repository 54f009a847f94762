"""Cached, integrity-checked list of compromised npm packages."""
from __future__ import annotations

import http.client
import logging
import os
import re
import ssl
import tempfile
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Optional, Set

from vtk_scan.scan_core.config import CA_BUNDLE_PATHS, USER_AGENT, CacheConfig

LOGGER = logging.getLogger("vtk")

PACKAGE_LINE_PATTERN = re.compile(
    r"^[@a-zA-Z0-9][\w\-./]*:\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.\-+]+)?$"
)


class ThreatListError(RuntimeError):
    """A single attempt to fetch or validate the threat list failed."""


class ThreatListUnavailable(ThreatListError):
    """No usable threat list exists locally."""


def find_ca_file() -> Optional[str]:
    """Return the first CA bundle present on this system."""
    for candidate in CA_BUNDLE_PATHS:
        if os.path.isfile(candidate):
            return candidate
    return None


def build_ssl_context() -> ssl.SSLContext:
    """TLS 1.2+ client context with peer and hostname verification."""
    context = ssl.create_default_context(cafile=find_ca_file())
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED
    return context


def fetch_threat_list(url: str, timeout: int) -> str:
    """Download the threat list body, raising ``ThreatListError`` on failure."""
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(request, timeout=timeout, context=build_ssl_context()) as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                raise ThreatListError(f"Failed to fetch compromised packages list: HTTP {status}")
            charset = response.headers.get_content_charset() or "utf-8"
            return response.read().decode(charset, errors="replace")
    except urllib.error.HTTPError as exc:
        raise ThreatListError(f"Failed to fetch compromised packages list: HTTP {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise ThreatListError(f"Failed to fetch compromised packages list: {exc.reason}") from exc
    except (OSError, ValueError, LookupError, http.client.HTTPException) as exc:
        # socket timeouts, TLS failures and malformed responses
        raise ThreatListError(f"Failed to fetch compromised packages list: {exc}") from exc


def _is_comment(line: str) -> bool:
    return line.startswith("#")


def count_packages(content: str) -> int:
    """Count non-comment lines carrying a ``name:version`` separator."""
    count = 0
    for line in content.splitlines():
        stripped = line.strip()
        if stripped and not _is_comment(stripped) and ":" in stripped:
            count += 1
    return count


def validate_package_list(
    body: str,
    expected_header: str,
    min_expected_packages: int,
) -> int:
    """Check a downloaded body before it may replace the cache.

    Returns the package count; raises ``ThreatListError`` naming the first
    failed check.
    """
    if expected_header not in body:
        raise ThreatListError(
            "Downloaded file missing expected header - possible MITM or corrupted file"
        )

    package_count = count_packages(body)
    if package_count < min_expected_packages:
        raise ThreatListError(
            f"Downloaded file has only {package_count} packages "
            f"(expected {min_expected_packages}+) - possible truncation"
        )

    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or _is_comment(stripped):
            continue
        if not PACKAGE_LINE_PATTERN.match(stripped):
            raise ThreatListError(
                f"Downloaded file contains invalid package format ({stripped!r}) - possible corruption"
            )

    return package_count


def atomic_write(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` without exposing a partial file."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


def load_package_list(path: Path) -> Set[str]:
    """Load ``name:version`` strings from a cache file."""
    packages: Set[str] = set()
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            line = line.strip()
            if not line or _is_comment(line):
                continue
            if ":" not in line:
                continue
            packages.add(line)
    return packages


class ThreatListCache:
    """XDG cache of the compromised package list with TTL-based refresh."""

    def __init__(self, config: CacheConfig) -> None:
        self.config = config

    @property
    def cache_file(self) -> Path:
        return self.config.cache_file

    def is_stale(self, now: Optional[float] = None) -> bool:
        if not self.cache_file.is_file():
            return True
        current = time.time() if now is None else now
        return self.cache_file.stat().st_mtime < current - self.config.ttl

    def refresh(self) -> None:
        """Fetch, validate and commit a new list.

        Failures keep an existing cache (with a warning); without one they
        raise ``ThreatListUnavailable``.
        """
        LOGGER.info("Fetching compromised packages list...")
        try:
            body = fetch_threat_list(self.config.url, self.config.timeout)
            count = validate_package_list(
                body,
                expected_header=self.config.expected_header,
                min_expected_packages=self.config.min_expected_packages,
            )
            try:
                atomic_write(self.cache_file, body)
            except OSError as exc:
                raise ThreatListError(f"Failed to write {self.cache_file}: {exc}") from exc
        except ThreatListError as exc:
            if not self.cache_file.is_file():
                raise ThreatListUnavailable(str(exc)) from exc
            LOGGER.warning("%s, using cached version", exc)
            return

        LOGGER.info("Cached %s compromised packages", count)

    def compromised_packages(self, refresh: bool = False) -> Set[str]:
        """Return the threat list, refreshing it when stale or forced."""
        try:
            self.config.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ThreatListUnavailable(
                f"Cannot create cache directory {self.config.cache_dir}: {exc}"
            ) from exc

        if refresh or self.is_stale():
            self.refresh()

        if not self.cache_file.is_file():
            raise ThreatListUnavailable(
                "No compromised packages list available. Check your network connection."
            )

        packages = load_package_list(self.cache_file)
        LOGGER.debug("Loaded %s compromised packages from %s", len(packages), self.cache_file)
        return packages
