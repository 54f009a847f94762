"""Utility functions for scanning operations."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from vtk_scan.scan_core.config import SKIPPED_DIRECTORIES

LOGGER = logging.getLogger("vtk")


def safe_walk(root: Path, max_depth: Optional[int] = None) -> Iterator[Tuple[Path, List[str]]]:
    """Walk ``root`` top-down in lexical order, yielding ``(dir, filenames)``.

    ``node_modules`` and ``.git`` are pruned, symlinks are not followed and
    ``max_depth`` bounds how many directory levels below ``root`` are visited.
    """
    def onerror(exc: OSError) -> None:
        LOGGER.warning("Unable to access directory %s: %s", exc.filename or root, exc)

    for dirpath, dirnames, filenames in os.walk(root, topdown=True, onerror=onerror, followlinks=False):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)
        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRECTORIES)
        yield current, sorted(filenames)


def resolve_relative_path(path: object, root: Optional[Path]) -> str:
    """Convert absolute path to relative path if root provided."""
    if not root:
        return str(path)
    try:
        return str(Path(str(path)).resolve().relative_to(Path(root).resolve()))
    except ValueError:
        return str(path)
