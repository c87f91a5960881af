"""
TestCraft Repository Hub Scanner
Glob Matcher.

Translates path glob patterns into anchored, case-insensitive regular
expressions:

    **   any run of characters, separators included
    **/  zero or more leading directories ("**/x" also matches "x")
    *    any run of characters except "/"
    ?    exactly one character except "/"

Every other character is matched literally. Paths are compared with
forward slashes regardless of platform.
"""

from __future__ import annotations

import re
from typing import Iterable


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compile a glob pattern into an anchored regex."""
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "*":
            if i + 1 < n and pattern[i + 1] == "*":
                # "**/" swallows whole directories, including none at all
                if i + 2 < n and pattern[i + 2] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                    continue
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.IGNORECASE)


def normalize_path(path: str) -> str:
    return str(path).replace("\\", "/").strip("/")


class GlobMatcher:
    """Include/exclude filter over relative paths.

    Exclude patterns are checked first and always win. When include
    patterns are configured a path must match at least one of them;
    with no include patterns every non-excluded path passes.
    """

    def __init__(self, include: Iterable[str] | None = None, exclude: Iterable[str] | None = None):
        self.include_patterns = [p.strip() for p in (include or []) if p and p.strip()]
        self.exclude_patterns = [p.strip() for p in (exclude or []) if p and p.strip()]
        self._include = [glob_to_regex(p) for p in self.include_patterns]
        self._exclude = [glob_to_regex(p) for p in self.exclude_patterns]

    @property
    def has_filters(self) -> bool:
        return bool(self._include or self._exclude)

    def is_excluded(self, path: str) -> bool:
        rel = normalize_path(path)
        return any(rx.match(rel) for rx in self._exclude)

    def matches(self, path: str) -> bool:
        rel = normalize_path(path)
        if any(rx.match(rel) for rx in self._exclude):
            return False
        if not self._include:
            return True
        return any(rx.match(rel) for rx in self._include)

    def __repr__(self):
        return f"<GlobMatcher include={self.include_patterns} exclude={self.exclude_patterns}>"
