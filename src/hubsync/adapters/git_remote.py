"""Detect the workspace login from the local git checkout."""

from __future__ import annotations

import re
import subprocess
from logging import getLogger
from typing import TYPE_CHECKING, Final

from hubsync.config import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

log = getLogger(__name__)

# https://github.com/owner/repo, git@github.com:owner/repo.git
GITHUB_OWNER_PATTERN: Final[re.Pattern[str]] = re.compile(r"github\.com[:/]([^/]+)/")


class RemoteDetectionError(ConfigurationError):
    """Raised when no GitHub owner can be read from the ``origin`` remote."""


def parse_remote_owner(remote_url: str) -> str:
    match = GITHUB_OWNER_PATTERN.search(remote_url)
    if match is None:
        raise RemoteDetectionError(f"Could not parse GitHub owner from: {remote_url}")
    return match.group(1)


def detect_workspace_login(cwd: Path | None = None) -> str:
    """Return the owner of the ``origin`` remote of the checkout at ``cwd``."""

    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],  # noqa: S607
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True,
            text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as exc:
        raise RemoteDetectionError("No git remote 'origin' found") from exc
    login = parse_remote_owner(result.stdout.strip())
    log.info("Detected workspace %s from git remote origin", login)
    return login
