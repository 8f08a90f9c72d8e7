"""Cloning inventory records into a destination directory."""

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from . import git_wrapper
from .constants import APP_NAME
from .git_wrapper import GitError, GitRepo
from .models import RepositoryRecord, RestoreOutcome, RestoreStatus, matches_system
from .paths import ROOT_MARKER, OutOfScopeError, is_unsafe, resolve_within_root

logger = logging.getLogger(APP_NAME)


@dataclass
class RestorePolicy:
    """How existing directories and external processes are handled.

    Attributes:
        overwrite_existing (bool): Delete an existing target before cloning.
        skip_existing (bool): Leave existing targets alone without a warning.
            Takes precedence over `overwrite_existing`.
        git_executable (str): The git executable used for clones.
        dry_run (bool): Report what would happen without touching the disk.
        machine_name (str | None): Name matched against each record's
            `system_filter`. None disables filtering.
        quiet (bool): Suppress git's own output.
    """

    overwrite_existing: bool = False
    skip_existing: bool = False
    git_executable: str = "git"
    dry_run: bool = False
    machine_name: str | None = None
    quiet: bool = True


def _skipped(
    target: Path | None, record: RepositoryRecord, reason: str
) -> RestoreOutcome:
    return RestoreOutcome(target, record.remote_url, RestoreStatus.SKIPPED, reason)


def _apply_identity(target: Path, record: RepositoryRecord, git: str) -> None:
    """Sets the recorded author identity on a fresh clone, logging failures."""
    if not (record.user_name or record.user_email):
        return
    try:
        GitRepo(target, git).set_identity(record.user_name, record.user_email)
    except (GitError, ValueError) as e:
        logger.warning(f"IDENTITY ERROR {target}: {e}")


def restore_record(
    record: RepositoryRecord, destination_root: Path, policy: RestorePolicy
) -> RestoreOutcome:
    """Clones a single record below the destination root.

    Every expected condition (invalid path, known-unreachable remote,
    existing directory, failed clone) produces an outcome instead of an
    exception.

    Args:
        record (RepositoryRecord): The repository to restore.
        destination_root (Path): The directory the relative path is joined to.
        policy (RestorePolicy): The restore settings.

    Returns:
        RestoreOutcome: The terminal state for this record.
    """
    if not record.has_remote:
        logger.warning(f"SKIPPED {record.relative_path or '?'}: no remote URL.")
        return _skipped(None, record, "no remote URL")
    if not record.relative_path or not record.relative_path.strip():
        logger.warning(f"SKIPPED {record.remote_url}: no relative path.")
        return _skipped(None, record, "no relative path")
    if is_unsafe(record.relative_path):
        logger.warning(f"SKIPPED {record.relative_path}: unsafe relative path.")
        return _skipped(None, record, "unsafe relative path")

    try:
        target = resolve_within_root(destination_root, record.relative_path)
    except OutOfScopeError as e:
        logger.warning(f"SKIPPED {record.relative_path}: {e}")
        return _skipped(None, record, "outside of destination")

    if record.is_remote_accessible is False:
        logger.warning(
            f"SKIPPED {target}: remote {record.remote_url} is inaccessible."
        )
        return _skipped(target, record, "remote inaccessible")

    if policy.machine_name is not None and not matches_system(
        record.system_filter, policy.machine_name
    ):
        logger.debug(f"SKIPPED {target}: excluded by '{record.system_filter}'.")
        return _skipped(target, record, "excluded by system filter")

    if target.is_dir():
        if target == resolve_within_root(destination_root, ROOT_MARKER):
            logger.warning(
                f"SKIPPED {target}: the destination root is never replaced."
            )
            return _skipped(
                target, record, "destination root exists; refusing to replace it"
            )
        if policy.skip_existing:
            logger.debug(f"SKIPPED {target}: already exists.")
            return _skipped(target, record, "already exists")
        if not policy.overwrite_existing:
            logger.warning(
                f"SKIPPED {target}: directory exists (use force or skip-existing)."
            )
            return _skipped(target, record, "directory exists")
        if policy.dry_run:
            return _skipped(target, record, "dry run: would replace and clone")
        logger.info(f"REMOVING {target} before clone.")
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.error(f"FAILED {target}: could not remove directory: {e}")
            return RestoreOutcome(
                target, record.remote_url, RestoreStatus.FAILED, str(e)
            )
    elif policy.dry_run:
        return _skipped(target, record, "dry run: would clone")

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        code = git_wrapper.clone(
            record.remote_url or "",
            target,
            executable=policy.git_executable,
            quiet=policy.quiet,
        )
    except OSError as e:
        logger.error(f"CLONE ERROR {target}: {e}")
        return RestoreOutcome(target, record.remote_url, RestoreStatus.FAILED, str(e))

    if code != 0:
        logger.error(f"CLONE FAILED {target}: git exited with {code}.")
        return RestoreOutcome(
            target,
            record.remote_url,
            RestoreStatus.FAILED,
            f"git clone exited with {code}",
            exit_code=code,
        )

    logger.info(f"CLONED {record.remote_url} -> {target}")
    _apply_identity(target, record, policy.git_executable)
    return RestoreOutcome(target, record.remote_url, RestoreStatus.CLONED)


def restore(
    records: Iterable[RepositoryRecord],
    destination_root: Path,
    policy: RestorePolicy | None = None,
) -> list[RestoreOutcome]:
    """Clones every record below the destination root.

    Records are processed in order and independently; a failure never stops
    the batch.

    Args:
        records (Iterable[RepositoryRecord]): The repositories to restore.
        destination_root (Path): The directory the relative paths are joined to.
        policy (RestorePolicy | None, optional): Restore settings.

    Returns:
        list[RestoreOutcome]: One outcome per record, in input order.
    """
    policy = policy or RestorePolicy()
    outcomes = [restore_record(r, destination_root, policy) for r in records]

    counts = {status: 0 for status in RestoreStatus}
    for outcome in outcomes:
        counts[outcome.status] += 1
    logger.info(
        f"Restore finished: {counts[RestoreStatus.CLONED]} cloned, "
        f"{counts[RestoreStatus.SKIPPED]} skipped, "
        f"{counts[RestoreStatus.FAILED]} failed."
    )
    return outcomes
