"""
TestCraft Repository Hub Scanner
Repository list loader.

The list file holds one repository per line:

    # comment
    https://git.example.com/payments/billing.git,Payments,PAY
    git@git.example.com:platform/auth.git,Platform,PLT
    https://git.example.com/tools/lint.git

Team name and code are optional but come as a pair. Blank lines and
lines starting with ``#`` are ignored. Lines that do not look like a git
URL are logged and skipped.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from testcraft.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_URL_PREFIXES = ("https://", "http://", "git://", "ssh://", "git@", "file://")
_KNOWN_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")


@dataclass(frozen=True)
class RepositoryEntry:
    """One configured remote repository and its optional owning team."""

    url: str
    team_name: str | None = None
    team_code: str | None = None


def is_valid_git_url(url: str | None) -> bool:
    """Loose check that a string looks like something git can clone."""
    if not url or not url.strip():
        return False
    url = url.strip()
    return (
        url.startswith(_URL_PREFIXES)
        or url.endswith(".git")
        or any(host in url for host in _KNOWN_HOSTS)
    )


def parse_line(line: str) -> RepositoryEntry | None:
    """Parse one non-comment line. Returns None when it is not a usable entry."""
    parts = [p.strip() for p in line.split(",")]
    url = parts[0] if parts else ""
    if not is_valid_git_url(url):
        return None
    team_name = parts[1] if len(parts) > 1 and parts[1] else None
    team_code = parts[2] if len(parts) > 2 and parts[2] else None
    if team_code is None:
        team_name = None
    return RepositoryEntry(url=url, team_name=team_name, team_code=team_code)


def load_repository_list(path: str) -> list[RepositoryEntry]:
    """
    Read the repository list file.

    Raises:
        ConfigurationError: the file is missing or unreadable.
    """
    if not path:
        raise ConfigurationError("No repository list file configured (REPOSITORY_LIST_FILE)")
    if not os.path.isfile(path):
        raise ConfigurationError(f"Repository list file not found: {path}",
                                 details={"path": path})
    try:
        with open(path, encoding="utf-8") as fh:
            lines = fh.readlines()
    except OSError as exc:
        raise ConfigurationError(f"Repository list file unreadable: {path}: {exc}",
                                 details={"path": path}) from exc

    entries: list[RepositoryEntry] = []
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        entry = parse_line(line)
        if entry is None:
            logger.warning("Skipping invalid repository list line %d: %s", lineno, line)
            continue
        entries.append(entry)

    logger.info("Loaded %d repositories from %s", len(entries), path)
    return entries
