"""
TestCraft Repository Hub Scanner
Git Hub Manager.

Keeps one local checkout per configured remote repository under the hub
directory. The hub is owned exclusively by this class: nothing else
clones into it or deletes from it.

    hub/
      billing/      ← https://git.example.com/payments/billing.git
      auth/         ← git@git.example.com:platform/auth.git

Sync policy:
    - ``<hub>/<name>/.git`` exists   → fetch + hard reset to the remote head
    - otherwise                       → (remove leftovers) + clone
    - each network call is bounded by ``timeout_seconds`` and retried
      ``max_retries`` times with linear backoff
    - a URL whose folder name is already taken by another URL is rejected

Auth precedence: SSH key > username/password > anonymous.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable
from urllib.parse import quote, urlsplit, urlunsplit

import git
import git.exc

from testcraft.core.exceptions import (
    ConfigurationError,
    ConnectivityError,
    ConstraintError,
    HubIOError,
)
from testcraft.services.repository_list import RepositoryEntry

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Credentials
# ═══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class GitCredentials:
    """Credentials used for every clone/fetch. Empty means anonymous."""

    username: str | None = None
    password: str | None = None
    ssh_key_path: str | None = None

    @property
    def mode(self) -> str:
        if self.ssh_key_path:
            return "ssh_key"
        if self.username and self.password:
            return "password"
        return "anonymous"

    def __repr__(self):
        # never print secrets
        return f"GitCredentials(mode={self.mode!r}, username={self.username!r})"


def strip_url_credentials(url: str) -> str:
    """Remove any ``user:password@`` part from an http(s) URL."""
    if not url or "://" not in url:
        return url
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def normalize_url(url: str) -> str:
    """Comparable form of a remote URL: no credentials, no trailing slash or ``.git``."""
    url = strip_url_credentials((url or "").strip()).rstrip("/")
    if url.endswith(".git"):
        url = url[:-4]
    return url.lower()


# ═══════════════════════════════════════════════════════════════════════════
#  Results
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class SyncResult:
    """Outcome of syncing one repository."""

    name: str
    url: str
    path: str
    action: str = ""            # cloned, pulled, rejected, failed
    success: bool = True
    error: str | None = None
    attempts: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": strip_url_credentials(self.url),
            "path": self.path,
            "action": self.action,
            "success": self.success,
            "error": self.error,
            "attempts": self.attempts,
            "duration_ms": self.duration_ms,
        }


@dataclass
class SyncReport:
    """Outcome of syncing a whole repository list."""

    results: list[SyncResult] = field(default_factory=list)

    @property
    def synced(self) -> list[SyncResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if not r.success]

    @property
    def synced_count(self) -> int:
        return len(self.synced)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "synced": self.synced_count,
            "failed": self.failed_count,
            "errors": {r.name: r.error for r in self.failed},
        }


# ═══════════════════════════════════════════════════════════════════════════
#  Manager
# ═══════════════════════════════════════════════════════════════════════════


class GitHubManager:
    """Clone/pull/release checkouts inside a single hub directory."""

    def __init__(
        self,
        hub_path: str | os.PathLike,
        credentials: GitCredentials | None = None,
        branch: str | None = None,
        timeout_seconds: int = 300,
        max_retries: int = 2,
        retry_backoff_seconds: float = 5.0,
        temp_clone: bool = False,
    ):
        self.hub_path = Path(hub_path)
        self.credentials = credentials or GitCredentials()
        self.branch = branch
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff_seconds = retry_backoff_seconds
        self.temp_clone = temp_clone

    @classmethod
    def from_config(cls, cfg) -> GitHubManager:
        """Build a manager from a Flask config mapping."""
        return cls(
            hub_path=cfg["REPOSITORY_HUB_PATH"],
            credentials=GitCredentials(
                username=cfg.get("GIT_USERNAME"),
                password=cfg.get("GIT_PASSWORD"),
                ssh_key_path=cfg.get("GIT_SSH_KEY_PATH"),
            ),
            branch=cfg.get("GIT_BRANCH"),
            timeout_seconds=cfg.get("GIT_TIMEOUT_SECONDS", 300),
            max_retries=cfg.get("GIT_MAX_RETRIES", 2),
            retry_backoff_seconds=cfg.get("GIT_RETRY_BACKOFF_SECONDS", 5.0),
            temp_clone=cfg.get("TEMP_CLONE_MODE", False),
        )

    # ── Hub directory ────────────────────────────────────────────────────

    def ensure_hub(self, path: str | os.PathLike | None = None) -> Path:
        """
        Create the hub directory if absent.

        Raises:
            HubIOError: the path exists but is not a writable directory,
                        or it cannot be created.
        """
        hub = Path(path) if path is not None else self.hub_path
        if hub.exists():
            if not hub.is_dir():
                raise HubIOError("Hub path exists but is not a directory", path=str(hub))
            if not os.access(hub, os.W_OK | os.X_OK):
                raise HubIOError("Hub directory is not writable", path=str(hub))
            return hub
        try:
            hub.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise HubIOError(f"Cannot create hub directory: {exc}", path=str(hub)) from exc
        logger.info("Created repository hub at %s", hub)
        return hub

    def repository_path(self, name: str) -> Path:
        return self.hub_path / name

    @staticmethod
    def derive_repository_name(url: str) -> str:
        """
        Stable local folder name for a remote URL: the last path segment
        without a trailing ``.git``.

            https://host/group/billing.git   → billing
            git@host:group/sub/auth.git      → auth
            /srv/git/lint/                   → lint
        """
        raw = (url or "").strip().rstrip("/")
        if raw.endswith(".git"):
            raw = raw[:-4]
        if "://" in raw:
            raw = urlsplit(raw).path
        elif raw.startswith("git@") or (":" in raw and "@" in raw.split(":", 1)[0]):
            raw = raw.split(":", 1)[1]
        name = raw.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
        if not name or name in (".", ".."):
            raise ConfigurationError(f"Cannot derive repository name from URL: {strip_url_credentials(url)}")
        return name

    # ── Sync ─────────────────────────────────────────────────────────────

    def sync_all(self, entries: Iterable[RepositoryEntry | str]) -> SyncReport:
        """
        Sync every repository, strictly sequentially.

        One repository's failure is logged and recorded; the rest of the
        list is still processed.
        """
        report = SyncReport()
        claimed: dict[str, str] = {}
        for entry in entries:
            url = entry.url if isinstance(entry, RepositoryEntry) else str(entry)
            try:
                name = self.derive_repository_name(url)
            except ConfigurationError as exc:
                logger.error("Skipping repository: %s", exc)
                report.results.append(SyncResult(name="", url=url, path="", action="failed",
                                                 success=False, error=str(exc)))
                continue

            owner = claimed.get(name)
            if owner is not None and normalize_url(owner) != normalize_url(url):
                msg = (f"Folder name '{name}' already claimed by {strip_url_credentials(owner)}; "
                       f"rejecting {strip_url_credentials(url)}")
                logger.error("%s", msg, extra={"repository": name})
                report.results.append(SyncResult(name=name, url=url, path=str(self.repository_path(name)),
                                                 action="rejected", success=False, error=msg))
                continue
            claimed[name] = url

            try:
                result = self.sync_repository(url)
            except (ConnectivityError, HubIOError, ConstraintError, git.exc.GitError) as exc:
                logger.error("Sync failed for %s: %s", name, exc, extra={"repository": name})
                action = "rejected" if isinstance(exc, ConstraintError) else "failed"
                result = SyncResult(name=name, url=url, path=str(self.repository_path(name)),
                                    action=action, success=False, error=str(exc),
                                    attempts=getattr(exc, "attempts", None) or 0)
            report.results.append(result)

        logger.info("Hub sync finished: %d synced, %d failed",
                    report.synced_count, report.failed_count)
        return report

    def sync_repository(self, url: str) -> SyncResult:
        """
        Clone or update one repository.

        Raises:
            ConstraintError: the folder is an existing checkout of a different remote.
            ConnectivityError: git kept failing after all retries.
            HubIOError: a stale or broken checkout could not be removed, or
                        the checkout became unreadable mid-sync.
        """
        name = self.derive_repository_name(url)
        dest = self.repository_path(name)
        start = time.monotonic()

        if self._is_checkout(dest):
            existing = self.read_git_url(dest)
            if existing and normalize_url(existing) != normalize_url(url):
                raise ConstraintError(
                    f"Hub folder '{name}' is a checkout of {existing}, not {strip_url_credentials(url)}",
                    table="hub", key=(name,),
                )
            attempts = self._with_retries(name, lambda: self._pull(dest, url))
            action = "pulled"
        else:
            if dest.exists():
                logger.warning("Removing stale or broken checkout %s", dest,
                               extra={"repository": name})
                self._remove_tree(dest)
            attempts = self._with_retries(name, lambda: self._clone(url, dest))
            action = "cloned"

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info("Repository %s %s", name, action,
                    extra={"repository": name, "duration_ms": duration_ms})
        return SyncResult(name=name, url=url, path=str(dest), action=action,
                          attempts=attempts, duration_ms=duration_ms)

    @staticmethod
    def _is_checkout(path: Path) -> bool:
        """True when ``path`` holds a readable git repository, not just a ``.git`` entry."""
        if not (path / ".git").exists():
            return False
        try:
            with git.Repo(path):
                return True
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            return False

    def _with_retries(self, name: str, operation) -> int:
        """Run ``operation`` with timeout-bound retries. Returns the attempt count."""
        total = self.max_retries + 1
        last_error = None
        for attempt in range(1, total + 1):
            try:
                operation()
                return attempt
            except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError, OSError) as exc:
                raise HubIOError(f"Checkout of {name} is unreadable: {self._redact(str(exc))}",
                                 path=str(self.repository_path(name))) from exc
            except git.exc.GitCommandError as exc:
                last_error = self._redact(str(exc))
                logger.warning("git attempt %d/%d failed for %s: %s", attempt, total, name, last_error,
                               extra={"repository": name, "attempt": attempt})
                if attempt < total and self.retry_backoff_seconds > 0:
                    time.sleep(self.retry_backoff_seconds * attempt)
        raise ConnectivityError(
            f"git operation failed for {name} after {total} attempt(s): {last_error}",
            repository=name, attempts=total,
        )

    def _clone(self, url: str, dest: Path) -> None:
        if dest.exists():
            # partial clone from a previous attempt
            self._remove_tree(dest)
        args = []
        if self.branch:
            args += ["--branch", self.branch]
        args += [self._authenticated_url(url), str(dest)]
        git.Git(str(self.hub_path)).clone(
            *args, env=self._git_env(), kill_after_timeout=self.timeout_seconds,
        )
        if self.credentials.mode == "password":
            # keep the password out of .git/config
            with git.Repo(dest) as repo:
                repo.git.remote("set-url", "origin", strip_url_credentials(url))

    def _pull(self, dest: Path, url: str) -> None:
        source = self._authenticated_url(url) if self.credentials.mode == "password" else "origin"
        ref = self.branch or "HEAD"
        with git.Repo(dest) as repo:
            repo.git.fetch(source, ref, env=self._git_env(), kill_after_timeout=self.timeout_seconds)
            if self.branch:
                repo.git.checkout("-f", "-B", self.branch, "FETCH_HEAD")
            else:
                repo.git.reset("--hard", "FETCH_HEAD")

    def _git_env(self) -> dict:
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.credentials.mode == "ssh_key":
            env["GIT_SSH_COMMAND"] = (
                f'ssh -i "{self.credentials.ssh_key_path}" -o IdentitiesOnly=yes '
                "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"
            )
        return env

    def _authenticated_url(self, url: str) -> str:
        if self.credentials.mode != "password" or not url.startswith(("https://", "http://")):
            return url
        parts = urlsplit(strip_url_credentials(url))
        userinfo = f"{quote(self.credentials.username, safe='')}:{quote(self.credentials.password, safe='')}"
        return urlunsplit((parts.scheme, f"{userinfo}@{parts.netloc}", parts.path, parts.query, parts.fragment))

    def _redact(self, text: str) -> str:
        secret = self.credentials.password
        if secret:
            text = text.replace(quote(secret, safe=""), "***").replace(secret, "***")
        return text

    # ── Release / inspection ─────────────────────────────────────────────

    def release(self, name: str) -> bool:
        """
        Delete a checkout from the hub (temp-clone mode).

        Callers must only release a repository after its scan results are
        persisted. Returns False when there was nothing to delete.
        """
        dest = self.repository_path(name).resolve()
        hub = self.hub_path.resolve()
        if dest == hub or hub not in dest.parents:
            raise HubIOError(f"Refusing to release path outside the hub: {dest}", path=str(dest))
        if not dest.exists():
            return False
        self._remove_tree(dest)
        logger.info("Released checkout %s", name, extra={"repository": name})
        return True

    @staticmethod
    def _remove_tree(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise HubIOError(f"Cannot remove {path}: {exc}", path=str(path)) from exc

    @staticmethod
    def read_git_url(repo_path: str | os.PathLike) -> str | None:
        """Best-effort remote URL of a local checkout, credentials stripped."""
        try:
            repo = git.Repo(repo_path)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            return None
        try:
            remotes = list(repo.remotes)
            if not remotes:
                return None
            remote = next((r for r in remotes if r.name == "origin"), remotes[0])
            return strip_url_credentials(remote.url)
        except (ValueError, git.exc.GitCommandError) as exc:
            logger.debug("No remote URL for %s: %s", repo_path, exc)
            return None
        finally:
            repo.close()

    def list_checkouts(self) -> list[str]:
        """Names of hub folders that are git checkouts."""
        if not self.hub_path.is_dir():
            return []
        return sorted(p.name for p in self.hub_path.iterdir() if (p / ".git").exists())

    def disk_usage(self, name: str | None = None) -> int:
        """Bytes used by one checkout, or by the whole hub when ``name`` is None."""
        root = self.repository_path(name) if name else self.hub_path
        total = 0
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                try:
                    total += os.lstat(os.path.join(dirpath, filename)).st_size
                except OSError:
                    continue
        return total
