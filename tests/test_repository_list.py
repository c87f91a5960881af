"""
TestCraft Repository Hub Scanner
Tests — Repository list loader.

Covers:
    1. URL validation
    2. Line parsing with optional team columns
    3. File loading: comments, blanks, invalid lines, missing file
"""

import pytest

from testcraft.core.exceptions import ConfigurationError
from testcraft.services.repository_list import (
    RepositoryEntry,
    is_valid_git_url,
    load_repository_list,
    parse_line,
)


class TestIsValidGitUrl:
    @pytest.mark.parametrize("url", [
        "https://git.example.com/payments/billing.git",
        "git@git.example.com:platform/auth.git",
        "ssh://git@host/x/y",
        "file:///srv/git/lint",
        "/srv/git/ledger.git",
        "https://github.com/org/repo",
    ])
    def test_valid(self, url):
        assert is_valid_git_url(url)

    @pytest.mark.parametrize("url", ["", "   ", None, "just some words", "ftp://host/repo"])
    def test_invalid(self, url):
        assert not is_valid_git_url(url)


class TestParseLine:
    def test_url_only(self):
        assert parse_line("https://h/g/r.git") == RepositoryEntry(url="https://h/g/r.git")

    def test_with_team(self):
        entry = parse_line(" https://h/g/r.git , Payments , PAY ")
        assert entry.team_name == "Payments"
        assert entry.team_code == "PAY"

    def test_team_name_without_code_is_dropped(self):
        entry = parse_line("https://h/g/r.git,Payments")
        assert entry.team_name is None
        assert entry.team_code is None

    def test_invalid(self):
        assert parse_line("not a repository") is None


class TestLoadRepositoryList:
    def test_loads_entries(self, tmp_path):
        path = tmp_path / "repos.txt"
        path.write_text(
            "# team repositories\n"
            "\n"
            "https://git.example.com/payments/billing.git,Payments,PAY\n"
            "garbage line\n"
            "   # indented comment\n"
            "git@git.example.com:platform/auth.git\n",
            encoding="utf-8",
        )
        entries = load_repository_list(str(path))
        assert [e.url for e in entries] == [
            "https://git.example.com/payments/billing.git",
            "git@git.example.com:platform/auth.git",
        ]
        assert entries[0].team_code == "PAY"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_repository_list(str(tmp_path / "nope.txt"))
        assert exc_info.value.details["path"].endswith("nope.txt")

    def test_not_configured(self):
        with pytest.raises(ConfigurationError):
            load_repository_list("")
