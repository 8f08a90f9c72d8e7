"""Reads repository metadata straight from the `.git` directory.

Nothing here invokes git except `probe_reachability`, so scanning works on
machines without a git executable and ignores global or system config by
construction.
"""

import logging
import re
import subprocess
from datetime import datetime, timezone
from pathlib import Path

from . import git_wrapper
from .constants import APP_NAME, DEFAULT_PROBE_TIMEOUT, REPO_MARKER
from .paths import is_unsafe

logger = logging.getLogger(APP_NAME)

GitConfig = dict[tuple[str, str | None], dict[str, str]]

_HEADER_RE = re.compile(
    r'^\[\s*([A-Za-z0-9.-]+)(?:\s+"((?:[^"\\]|\\.)*)")?\s*\](.*)$'
)
_KEY_RE = re.compile(r"^([A-Za-z][A-Za-z0-9-]*)\s*(?:=(.*))?$")
_HASH_RE = re.compile(r"^[0-9a-fA-F]{40}([0-9a-fA-F]{24})?$")
_ESCAPES = {"n": "\n", "t": "\t", "b": "\b", '"': '"', "\\": "\\"}


def _parse_value(raw: str) -> str:
    """Strips quotes, inline comments and escapes from a config value."""
    out: list[str] = []
    in_quotes = False
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw):
            out.append(_ESCAPES.get(raw[i + 1], raw[i + 1]))
            i += 2
            continue
        if ch == '"':
            in_quotes = not in_quotes
        elif ch in "#;" and not in_quotes:
            break
        else:
            out.append(ch)
        i += 1
    return "".join(out).strip()


def read_git_config(repo_path: Path) -> GitConfig:
    """Parses a repository's local `.git/config` file.

    The parser walks the file line by line, tracking the current section
    header. Section and key names are case-insensitive and returned in lower
    case; subsection names keep their case. A missing or unreadable file
    yields an empty mapping and malformed lines are skipped.

    Args:
        repo_path (Path): The repository root (the directory holding `.git`).

    Returns:
        GitConfig: Values keyed by `(section, subsection)` then by key name.
    """
    config_file = repo_path / REPO_MARKER / "config"
    try:
        text = config_file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.debug(f"No readable config in {repo_path}: {e}")
        return {}

    sections: GitConfig = {}
    current: tuple[str, str | None] | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#;":
            continue

        if line.startswith("["):
            match = _HEADER_RE.match(line)
            if not match:
                current = None
                continue
            name, sub, rest = match.groups()
            if sub is None and "." in name:
                # Legacy [section.sub] syntax.
                name, sub = name.split(".", 1)
                sub = sub.lower()
            elif sub is not None:
                sub = re.sub(r"\\(.)", r"\1", sub)
            current = (name.lower(), sub)
            sections.setdefault(current, {})
            line = rest.strip()
            if not line or line[0] in "#;":
                continue

        if current is None:
            continue

        match = _KEY_RE.match(line)
        if not match:
            continue
        key, value = match.groups()
        # A bare key is a boolean true.
        sections[current][key.lower()] = (
            _parse_value(value) if value is not None else "true"
        )

    return sections


def extract_remote_url(repo_path: Path, remote_name: str) -> str | None:
    """Returns the `url` of `[remote "<remote_name>"]`, or None if absent."""
    url = read_git_config(repo_path).get(("remote", remote_name), {}).get("url")
    return url or None


def extract_user_identity(repo_path: Path) -> tuple[str | None, str | None]:
    """Reads the repository-local author identity.

    Args:
        repo_path (Path): The repository root.

    Returns:
        tuple[str | None, str | None]: The `user.name` and `user.email`
                                       values, each None when not set.
    """
    user = read_git_config(repo_path).get(("user", None), {})
    return user.get("name") or None, user.get("email") or None


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _ref_mtime(git_dir: Path, ref: str) -> datetime | None:
    """Finds the modification time of a branch ref, loose or packed."""
    if is_unsafe(ref):
        return None
    loose = git_dir.joinpath(*ref.split("/"))
    if loose.is_file():
        return _mtime(loose)

    packed = git_dir / "packed-refs"
    try:
        with open(packed, encoding="utf-8", errors="replace") as f:
            for line in f:
                parts = line.split()
                if len(parts) == 2 and parts[1] == ref:
                    return _mtime(packed)
    except OSError:
        pass
    return None


def extract_status_date(repo_path: Path) -> datetime | None:
    """Determines when a repository last saw activity.

    The date is the modification time of the branch ref HEAD points to, of
    HEAD itself when it is detached, or of the `.git` directory when HEAD
    cannot be resolved.

    Args:
        repo_path (Path): The repository root.

    Returns:
        datetime | None: A UTC timestamp, or None if `.git` does not exist.
    """
    git_dir = repo_path / REPO_MARKER
    if not git_dir.is_dir():
        return None

    head = git_dir / "HEAD"
    try:
        content = head.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        content = ""

    try:
        if content.startswith("ref:"):
            ref = content[4:].strip()
            if ref_time := _ref_mtime(git_dir, ref):
                return ref_time
        elif _HASH_RE.match(content):
            return _mtime(head)
        return _mtime(git_dir)
    except OSError as e:
        logger.debug(f"Could not stat refs in {repo_path}: {e}")
        return None


def probe_reachability(
    remote_url: str | None,
    git_executable: str = "git",
    timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> bool:
    """Checks whether a remote answers `git ls-remote` within a time limit.

    Args:
        remote_url (str | None): The URL to probe. Empty URLs are never probed.
        git_executable (str, optional): The git executable. Defaults to "git".
        timeout (float, optional): Seconds before the probe is killed.

    Returns:
        bool: True only if git exited with code 0 in time. Never raises.
    """
    if not remote_url or not remote_url.strip():
        return False

    try:
        code = git_wrapper.ls_remote(remote_url, git_executable, timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"PROBE TIMEOUT {remote_url}: no answer in {timeout}s.")
        return False
    except Exception as e:
        logger.debug(f"Probe failed for {remote_url}: {e}")
        return False

    if code != 0:
        logger.debug(f"Probe for {remote_url} exited with {code}.")
    return code == 0
