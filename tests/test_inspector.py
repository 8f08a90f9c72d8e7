"""Tests for reading repository metadata from the .git directory."""

import os
import subprocess
from collections.abc import Callable
from datetime import timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_roster import inspector

RepoFactory = Callable[..., Path]


def _write_config(repo: Path, text: str) -> None:
    (repo / ".git").mkdir(parents=True, exist_ok=True)
    (repo / ".git" / "config").write_text(text)


def test_read_git_config_sections(tmp_path: Path) -> None:
    """Verifies subsections, case folding and comment handling."""
    _write_config(
        tmp_path,
        "# leading comment\n"
        "[Core]\n"
        "\tBare = false\n"
        '[remote "Upstream"]\n'
        '\turl = "git@example.com:team/api.git" ; trailing comment\n'
        "\tfetch = +refs/heads/*:refs/remotes/upstream/*\n"
        "[user]\n"
        '\tname = "Ada \\"The Countess\\" Lovelace"\n'
        "\temail = ada@example.com # comment\n",
    )

    config = inspector.read_git_config(tmp_path)

    assert config[("core", None)]["bare"] == "false"
    assert config[("remote", "Upstream")]["url"] == "git@example.com:team/api.git"
    assert config[("user", None)]["name"] == 'Ada "The Countess" Lovelace'
    assert config[("user", None)]["email"] == "ada@example.com"


def test_read_git_config_bare_and_empty_values(tmp_path: Path) -> None:
    """Verifies that a bare key is true and `key =` is an empty string."""
    _write_config(tmp_path, "[core]\n\tfilemode\n\tworktree =\n")

    core = inspector.read_git_config(tmp_path)[("core", None)]

    assert core["filemode"] == "true"
    assert core["worktree"] == ""


def test_read_git_config_legacy_subsection(tmp_path: Path) -> None:
    """Verifies that `[remote.origin]` is read as a lower-cased subsection."""
    _write_config(tmp_path, "[remote.Origin]\n\turl = https://example.com/r.git\n")

    assert inspector.extract_remote_url(tmp_path, "origin") == (
        "https://example.com/r.git"
    )


def test_read_git_config_skips_malformed_sections(tmp_path: Path) -> None:
    """Verifies that keys below a malformed header are ignored."""
    _write_config(
        tmp_path,
        '[remote "origin"\n'
        "\turl = https://broken.example.com\n"
        "[user]\n"
        "\tname = Ada\n",
    )

    config = inspector.read_git_config(tmp_path)

    assert ("remote", "origin") not in config
    assert config[("user", None)]["name"] == "Ada"


def test_read_git_config_missing_file(tmp_path: Path) -> None:
    """Verifies that a repository without a config yields no metadata."""
    (tmp_path / ".git").mkdir()
    assert inspector.read_git_config(tmp_path) == {}
    assert inspector.extract_remote_url(tmp_path, "origin") is None
    assert inspector.extract_user_identity(tmp_path) == (None, None)


def test_extract_remote_url_uses_named_remote(
    tmp_path: Path, make_repo: RepoFactory
) -> None:
    """Verifies that only the requested remote is read."""
    repo = make_repo(tmp_path / "r", url="https://example.com/r.git", remote="fork")

    assert inspector.extract_remote_url(repo, "fork") == "https://example.com/r.git"
    assert inspector.extract_remote_url(repo, "origin") is None


def test_extract_user_identity(tmp_path: Path, make_repo: RepoFactory) -> None:
    """Verifies that the local identity is read when present."""
    repo = make_repo(tmp_path / "r", name="Ada", email="ada@example.com")
    assert inspector.extract_user_identity(repo) == ("Ada", "ada@example.com")


def test_extract_status_date_uses_branch_ref(
    tmp_path: Path, make_repo: RepoFactory
) -> None:
    """Verifies that the date comes from the ref HEAD points to."""
    repo = make_repo(tmp_path / "r")
    ref = repo / ".git" / "refs" / "heads" / "main"
    os.utime(ref, (1_700_000_000, 1_700_000_000))

    date = inspector.extract_status_date(repo)

    assert date is not None
    assert date.tzinfo == timezone.utc
    assert date.timestamp() == 1_700_000_000


def test_extract_status_date_packed_ref(tmp_path: Path, make_repo: RepoFactory) -> None:
    """Verifies that packed-refs are consulted when the loose ref is absent."""
    repo = make_repo(tmp_path / "r", branch="main")
    git_dir = repo / ".git"
    (git_dir / "refs" / "heads" / "main").unlink()
    packed = git_dir / "packed-refs"
    packed.write_text("# pack-refs with: peeled\n" + "b" * 40 + " refs/heads/main\n")
    os.utime(packed, (1_600_000_000, 1_600_000_000))

    date = inspector.extract_status_date(repo)

    assert date is not None
    assert date.timestamp() == 1_600_000_000


def test_extract_status_date_detached_head(tmp_path: Path) -> None:
    """Verifies that a detached HEAD dates from the HEAD file itself."""
    head = tmp_path / ".git" / "HEAD"
    head.parent.mkdir()
    head.write_text("c" * 40 + "\n")
    os.utime(head, (1_500_000_000, 1_500_000_000))

    date = inspector.extract_status_date(tmp_path)

    assert date is not None
    assert date.timestamp() == 1_500_000_000


def test_extract_status_date_unresolvable_head(tmp_path: Path) -> None:
    """Verifies the fallback to the .git directory when the ref is missing."""
    git_dir = tmp_path / ".git"
    git_dir.mkdir()
    (git_dir / "HEAD").write_text("ref: refs/heads/unborn\n")
    os.utime(git_dir, (1_400_000_000, 1_400_000_000))

    date = inspector.extract_status_date(tmp_path)

    assert date is not None
    assert date.timestamp() == 1_400_000_000


def test_extract_status_date_not_a_repo(tmp_path: Path) -> None:
    """Verifies that a directory without .git has no date."""
    assert inspector.extract_status_date(tmp_path) is None


@pytest.mark.parametrize("url", [None, "", "   "])
def test_probe_reachability_skips_empty_url(mocker: MagicMock, url: str | None) -> None:
    """Verifies that no process is spawned for an empty URL."""
    mock_ls = mocker.patch("git_roster.inspector.git_wrapper.ls_remote")

    assert inspector.probe_reachability(url) is False
    mock_ls.assert_not_called()


@pytest.mark.parametrize(("code", "expected"), [(0, True), (128, False)])
def test_probe_reachability_exit_code(
    mocker: MagicMock, code: int, expected: bool
) -> None:
    """Verifies that only a zero exit code counts as reachable."""
    mock_ls = mocker.patch(
        "git_roster.inspector.git_wrapper.ls_remote", return_value=code
    )

    reachable = inspector.probe_reachability("https://example.com/r.git", "git", 3)

    assert reachable is expected
    mock_ls.assert_called_once_with("https://example.com/r.git", "git", 3)


def test_probe_reachability_timeout(mocker: MagicMock, caplog: MagicMock) -> None:
    """Verifies that a timed-out probe reports unreachable instead of raising."""
    mocker.patch(
        "git_roster.inspector.git_wrapper.ls_remote",
        side_effect=subprocess.TimeoutExpired(cmd="git", timeout=1),
    )

    assert inspector.probe_reachability("https://slow.example.com/r.git") is False
    assert "PROBE TIMEOUT" in caplog.text


def test_probe_reachability_spawn_failure(mocker: MagicMock) -> None:
    """Verifies that a missing git executable reports unreachable."""
    mocker.patch(
        "git_roster.inspector.git_wrapper.ls_remote",
        side_effect=FileNotFoundError("git"),
    )

    assert inspector.probe_reachability("https://example.com/r.git") is False
