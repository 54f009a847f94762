"""Backdoor detection for GitHub Actions workflows."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List

from vtk_scan.scan_core import config
from vtk_scan.scan_core.models import DISCUSSION_BACKDOOR, SECRETS_EXTRACTION, BackdoorWorkflow

LOGGER = logging.getLogger("vtk")

DISCUSSION_BODY = re.compile(config.DISCUSSION_BODY_PATTERN)


def is_discussion_backdoor(content: str) -> bool:
    """Discussion-triggered job on a self-hosted runner echoing the raw body."""
    return (
        "discussion" in content
        and "self-hosted" in content
        and DISCUSSION_BODY.search(content) is not None
    )


def detect_workflow_backdoors(root: Path) -> List[BackdoorWorkflow]:
    """Detect known backdoor workflows in ``root/.github/workflows``."""
    findings: List[BackdoorWorkflow] = []
    workflows_dir = Path(root) / config.WORKFLOWS_SUBDIR
    if not workflows_dir.is_dir():
        return findings

    for name in config.DISCUSSION_WORKFLOW_NAMES:
        workflow_file = workflows_dir / name
        if not workflow_file.is_file():
            continue
        try:
            content = workflow_file.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            LOGGER.warning("Unable to read workflow %s: %s", workflow_file, exc)
            continue
        if is_discussion_backdoor(content):
            findings.append(BackdoorWorkflow(file_path=workflow_file, kind=DISCUSSION_BACKDOOR))

    # Presence alone is the signal
    for workflow_file in sorted(workflows_dir.glob(config.SECRETS_WORKFLOW_GLOB)):
        findings.append(BackdoorWorkflow(file_path=workflow_file, kind=SECRETS_EXTRACTION))

    return findings
