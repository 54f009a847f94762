"""Configuration constants and patterns for repository scanning."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

TOOL_NAME = "vtk"

# Threat list source
COMPROMISED_PACKAGES_URL = (
    "https://raw.githubusercontent.com/Cobenian/shai-hulud-detect/main/compromised-packages.txt"
)
ENV_THREAT_LIST_URL = "VTK_THREAT_LIST_URL"
COMPROMISED_PACKAGES_FILENAME = "compromised-packages.txt"
USER_AGENT = "vtk-security-scanner"

# Cache policy
DEFAULT_TTL = 24 * 60 * 60
DEFAULT_TIMEOUT = 30

# Minimum expected packages - fewer means a truncated download
MIN_EXPECTED_PACKAGES = 500

# Header comment every authentic list carries
EXPECTED_HEADER = "Shai-Hulud NPM Supply Chain Attack"

# CA bundle locations, first existing one wins
CA_BUNDLE_PATHS = (
    "/etc/ssl/certs/ca-certificates.crt",  # Debian/Ubuntu
    "/etc/pki/tls/certs/ca-bundle.crt",  # RHEL/CentOS
    "/etc/ssl/ca-bundle.pem",  # OpenSUSE
    "/usr/local/share/certs/ca-root-nss.crt",  # FreeBSD
    "/etc/ssl/cert.pem",  # macOS
)

# Lockfile basenames recognised by the parser
LOCKFILE_NAMES = ("package-lock.json", "yarn.lock", "pnpm-lock.yaml")

# Directories never descended into during recursive scans
SKIPPED_DIRECTORIES = {"node_modules", ".git"}

# Known backdoor workflow signatures
WORKFLOWS_SUBDIR = Path(".github") / "workflows"
DISCUSSION_WORKFLOW_NAMES = ("discussion.yaml", "discussion.yml")
DISCUSSION_BODY_PATTERN = r"\$\{\{\s*github\.event\.discussion\.body\s*\}\}"
SECRETS_WORKFLOW_GLOB = "formatter_*.yml"

PLAYBOOK_URL = "https://github.com/Cobenian/shai-hulud-detect"


def default_cache_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Return ``$XDG_CACHE_HOME/vtk`` falling back to ``~/.cache/vtk``."""
    env = os.environ if environ is None else environ
    base = env.get("XDG_CACHE_HOME")
    root = Path(base).expanduser() if base else Path.home() / ".cache"
    return root / TOOL_NAME


@dataclass(frozen=True)
class CacheConfig:
    """Settings for the compromised package list cache."""

    cache_dir: Path
    url: str = COMPROMISED_PACKAGES_URL
    ttl: int = DEFAULT_TTL
    timeout: int = DEFAULT_TIMEOUT
    min_expected_packages: int = MIN_EXPECTED_PACKAGES
    expected_header: str = EXPECTED_HEADER

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / COMPROMISED_PACKAGES_FILENAME

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> "CacheConfig":
        """Build the configuration from environment overrides."""
        env = os.environ if environ is None else environ
        url = env.get(ENV_THREAT_LIST_URL) or COMPROMISED_PACKAGES_URL
        return cls(cache_dir=default_cache_dir(env), url=url, timeout=timeout)
