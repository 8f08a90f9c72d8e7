"""Shared fixtures for building repositories on disk."""

from collections.abc import Callable
from pathlib import Path

import pytest

RepoFactory = Callable[..., Path]


def write_repo(
    path: Path,
    url: str | None = None,
    remote: str = "origin",
    name: str | None = None,
    email: str | None = None,
    branch: str = "main",
) -> Path:
    """Creates a minimal `.git` directory with a hand-written config.

    Args:
        path (Path): The repository root to create.
        url (str | None, optional): The remote URL, omitted when None.
        remote (str, optional): The remote name. Defaults to "origin".
        name (str | None, optional): The local `user.name`.
        email (str | None, optional): The local `user.email`.
        branch (str, optional): The branch HEAD points to.

    Returns:
        Path: The repository root.
    """
    git_dir = path / ".git"
    (git_dir / "refs" / "heads").mkdir(parents=True)
    (git_dir / "HEAD").write_text(f"ref: refs/heads/{branch}\n")
    (git_dir / "refs" / "heads" / branch).write_text("a" * 40 + "\n")

    lines = ["[core]", "\trepositoryformatversion = 0", "\tbare = false"]
    if url:
        lines += [f'[remote "{remote}"]', f"\turl = {url}"]
    if name or email:
        lines.append("[user]")
        if name:
            lines.append(f"\tname = {name}")
        if email:
            lines.append(f"\temail = {email}")
    (git_dir / "config").write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def make_repo() -> RepoFactory:
    """Returns a factory that writes a fake repository to disk."""
    return write_repo
