"""Breadth-first discovery of git repositories below a root directory."""

import logging
import os
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from . import inspector
from .constants import (
    APP_NAME,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REMOTE,
    REPO_MARKER,
)
from .models import RepositoryRecord
from .paths import ROOT_MARKER, is_unsafe

logger = logging.getLogger(APP_NAME)


@dataclass
class ScanOptions:
    """Settings for a single scan.

    Attributes:
        remote_name (str): The remote whose URL is recorded.
        skip_accessibility_check (bool): Whether to skip `git ls-remote` probes.
        git_executable (str): The git executable used for probes.
        probe_timeout (float): Seconds allowed per probe.
    """

    remote_name: str = DEFAULT_REMOTE
    skip_accessibility_check: bool = False
    git_executable: str = "git"
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT


def canonical_root(root: Path | str) -> Path:
    """Resolves a scan root to an absolute, symlink-free directory path.

    Raises:
        FileNotFoundError: If the root does not exist.
        NotADirectoryError: If the root is not a directory.
    """
    resolved = Path(root).expanduser().resolve(strict=True)
    if not resolved.is_dir():
        raise NotADirectoryError(f"Not a directory: {resolved}")
    return resolved


def _child_directories(directory: Path) -> Iterator[Path]:
    """Yields the immediate subdirectories worth descending into.

    The repository marker and symbolic links are never followed.

    Raises:
        OSError: If the directory cannot be listed.
    """
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.name == REPO_MARKER:
                continue
            try:
                if entry.is_symlink() or not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError as e:
                logger.debug(f"Skipping {entry.path}: {e}")
                continue
            yield Path(entry.path)


def inspect_repository(
    root: Path,
    repo_path: Path,
    options: ScanOptions,
    probe_cache: dict[str, bool] | None = None,
) -> RepositoryRecord:
    """Builds the record for a single repository.

    Args:
        root (Path): The canonical scan root.
        repo_path (Path): The repository directory, below or equal to root.
        options (ScanOptions): The scan settings.
        probe_cache (dict[str, bool] | None, optional): Probe results by URL,
            shared across one scan so each remote is probed once.

    Returns:
        RepositoryRecord: The discovered repository.
    """
    # Names are kept verbatim so full_path always points back at repo_path.
    relative = "/".join(repo_path.relative_to(root).parts) or ROOT_MARKER
    remote_url = inspector.extract_remote_url(repo_path, options.remote_name)
    user_name, user_email = inspector.extract_user_identity(repo_path)

    accessible: bool | None = None
    if not options.skip_accessibility_check:
        cache = probe_cache if probe_cache is not None else {}
        if remote_url and remote_url in cache:
            accessible = cache[remote_url]
        else:
            accessible = inspector.probe_reachability(
                remote_url, options.git_executable, options.probe_timeout
            )
            if remote_url:
                cache[remote_url] = accessible

    return RepositoryRecord(
        root_path=root,
        relative_path=relative,
        remote_name=options.remote_name if remote_url else None,
        remote_url=remote_url,
        is_remote_accessible=accessible,
        user_name=user_name,
        user_email=user_email,
        status_date=inspector.extract_status_date(repo_path),
    )


def scan(
    root: Path | str, options: ScanOptions | None = None
) -> list[RepositoryRecord]:
    """Finds every repository below a root directory.

    Directories are visited breadth-first. A directory holding a `.git`
    subdirectory is recorded and not descended into, so nested repositories
    and submodule checkouts never produce records of their own. Unreadable
    directories are logged and contribute nothing.

    The order of the result follows the traversal and is not stable across
    runs; sort by `relative_path` when order matters.

    Args:
        root (Path | str): The directory to scan.
        options (ScanOptions | None, optional): Scan settings. Defaults apply
                                                when omitted.

    Returns:
        list[RepositoryRecord]: One record per repository found.

    Raises:
        FileNotFoundError: If the root does not exist.
        NotADirectoryError: If the root is not a directory.
    """
    options = options or ScanOptions()
    base = canonical_root(root)
    logger.debug(f"Scanning {base} for repositories...")

    records: list[RepositoryRecord] = []
    probe_cache: dict[str, bool] = {}
    queue: deque[Path] = deque([base])

    while queue:
        current = queue.popleft()

        try:
            is_repo = (current / REPO_MARKER).is_dir()
            children = [] if is_repo else list(_child_directories(current))
        except OSError as e:
            logger.warning(f"SCAN ERROR {current}: {e}")
            continue

        if is_repo:
            record = inspect_repository(base, current, options, probe_cache)
            if is_unsafe(record.relative_path):
                logger.warning(f"SKIPPED {current}: unsafe relative path.")
                continue
            records.append(record)
        else:
            queue.extend(children)

    logger.info(f"Found {len(records)} repositories under {base}.")
    return records
