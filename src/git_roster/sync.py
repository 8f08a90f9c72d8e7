"""Reconciling a local directory with a shared inventory file.

The local filesystem is authoritative for which repositories exist and for
their metadata. The inventory contributes entries missing locally (which are
cloned) and fills metadata the local copies lack. Conflicting values are
logged and the local value kept.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from . import codec, scanner, system
from .config import Config
from .constants import APP_NAME
from .models import RepositoryRecord, RestoreOutcome, matches_system
from .paths import is_unsafe, normalize
from .restore import RestorePolicy, restore
from .scanner import ScanOptions

logger = logging.getLogger(APP_NAME)

_CONFLICT_FIELDS = ("remote_url", "remote_name")
_FILL_FIELDS = (
    "user_name",
    "user_email",
    "system_filter",
    "is_remote_accessible",
    "status_date",
)


@dataclass
class SyncOptions:
    """Settings for one sync.

    Attributes:
        scan (ScanOptions): How the local directory is scanned.
        restore (RestorePolicy): How missing repositories are cloned. Its
            `machine_name` also decides which inventory entries apply here.
        dry_run (bool): Plan only; create, clone and write nothing.
    """

    scan: ScanOptions = field(default_factory=ScanOptions)
    restore: RestorePolicy = field(default_factory=RestorePolicy)
    dry_run: bool = False


@dataclass
class SyncPlan:
    """The outcome of reconciling a directory against an inventory.

    Attributes:
        directory (Path): The local directory.
        list_path (Path): The inventory file.
        merged (list[RepositoryRecord]): Every record, sorted by relative path.
        clone_queue (list[RepositoryRecord]): Inventory entries to clone.
        unclonable (list[RepositoryRecord]): Missing entries without a URL.
        filtered_out (list[RepositoryRecord]): Missing entries whose system
            filter excludes this machine.
        file_existed (bool): Whether the inventory existed before the sync.
        file_needs_write (bool): Whether the merged set differs from the file.
        directory_exists (bool): Whether the local directory exists now.
    """

    directory: Path
    list_path: Path
    merged: list[RepositoryRecord] = field(default_factory=list)
    clone_queue: list[RepositoryRecord] = field(default_factory=list)
    unclonable: list[RepositoryRecord] = field(default_factory=list)
    filtered_out: list[RepositoryRecord] = field(default_factory=list)
    file_existed: bool = False
    file_needs_write: bool = False
    directory_exists: bool = False


@dataclass
class SyncResult:
    """A completed sync.

    Attributes:
        plan (SyncPlan): The reconciliation that was executed.
        outcomes (list[RestoreOutcome]): One outcome per queued clone.
        written (bool): Whether the inventory file was rewritten.
    """

    plan: SyncPlan
    outcomes: list[RestoreOutcome] = field(default_factory=list)
    written: bool = False


def _sort_key(record: RepositoryRecord) -> str:
    return record.relative_path.casefold()


def load_stored(
    list_path: Path, directory: Path
) -> tuple[dict[str, RepositoryRecord], bool]:
    """Reads the inventory and prepares its entries for merging.

    Entries with empty or unsafe relative paths and duplicates of an earlier
    entry are discarded. Every entry is rebased onto the local directory and
    keeps its relative path as written; `reconcile` decides whether a
    non-canonical path must be rewritten.

    Args:
        list_path (Path): The inventory file. Must exist.
        directory (Path): The local directory the entries will live in.

    Returns:
        tuple[dict[str, RepositoryRecord], bool]: The entries keyed by
            case-folded normalized path, and whether any entry was dropped
            (so the file needs rewriting).

    Raises:
        codec.InventoryError: If the file cannot be read or parsed.
    """
    stored: dict[str, RepositoryRecord] = {}
    altered = False

    for raw in codec.load(list_path):
        if not raw.relative_path.strip():
            logger.warning(f"DISCARDED entry {raw.remote_url}: no relative path.")
            altered = True
            continue
        relative = normalize(raw.relative_path)
        if is_unsafe(relative):
            logger.warning(f"DISCARDED entry '{raw.relative_path}': unsafe path.")
            altered = True
            continue

        record = replace(raw, root_path=directory)
        if record.key in stored:
            logger.warning(f"DISCARDED duplicate entry '{relative}'.")
            altered = True
            continue
        stored[record.key] = record

    return stored, altered


def merge_record(
    local: RepositoryRecord, stored: RepositoryRecord
) -> RepositoryRecord:
    """Combines the local and inventory views of one repository.

    Values missing locally are taken from the inventory. When both carry a
    different remote URL or remote name the local value wins and the
    disagreement is logged.

    Args:
        local (RepositoryRecord): The record scanned from disk.
        stored (RepositoryRecord): The matching inventory entry.

    Returns:
        RepositoryRecord: The merged record.
    """
    updates: dict = {}

    for name in _CONFLICT_FIELDS:
        local_value, stored_value = getattr(local, name), getattr(stored, name)
        if not local_value and stored_value:
            updates[name] = stored_value
        elif local_value and stored_value and local_value != stored_value:
            logger.warning(
                f"CONFLICT {local.relative_path}: local {name} '{local_value}' "
                f"differs from inventory '{stored_value}'. Keeping local."
            )

    for name in _FILL_FIELDS:
        if getattr(local, name) is None and getattr(stored, name) is not None:
            updates[name] = getattr(stored, name)

    return replace(local, **updates) if updates else local


def ensure_directory(
    directory: Path,
    confirm: Callable[[str], bool] | None = None,
    dry_run: bool = False,
) -> bool:
    """Makes sure the local directory exists, creating it if allowed.

    Args:
        directory (Path): The directory to check.
        confirm (Callable[[str], bool] | None, optional): Asked before
            creating. Creation proceeds when omitted.
        dry_run (bool, optional): Report instead of creating.

    Returns:
        bool: True if the directory exists afterwards.
    """
    if directory.is_dir():
        return True
    if dry_run:
        logger.info(f"DRY RUN: would create {directory}.")
        return False
    if confirm is not None and not confirm(f"Create directory {directory}?"):
        logger.warning(f"SKIPPED creating {directory}: not confirmed.")
        return False
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create {directory}: {e}")
        return False
    logger.info(f"CREATED {directory}")
    return True


def reconcile(
    directory: Path,
    list_path: Path,
    options: SyncOptions | None = None,
    confirm: Callable[[str], bool] | None = None,
) -> SyncPlan:
    """Merges a directory scan with an inventory and plans the clones.

    Args:
        directory (Path): The local directory.
        list_path (Path): The inventory file. It may not exist yet.
        options (SyncOptions | None, optional): Sync settings.
        confirm (Callable[[str], bool] | None, optional): Asked before the
            directory is created.

    Returns:
        SyncPlan: The merged records, the clone queue and the write decision.

    Raises:
        codec.InventoryError: If an existing inventory cannot be loaded.
    """
    options = options or SyncOptions()
    directory = Path(directory).expanduser().absolute()
    list_path = Path(list_path).expanduser()
    plan = SyncPlan(directory=directory, list_path=list_path)

    # 1. Prior state. Failing to read it is fatal.
    stored: dict[str, RepositoryRecord] = {}
    stored_altered = False
    plan.file_existed = list_path.exists()
    if plan.file_existed:
        stored, stored_altered = load_stored(list_path, directory)

    # 2. Local state.
    plan.directory_exists = ensure_directory(directory, confirm, options.dry_run)
    local: dict[str, RepositoryRecord] = {}
    if plan.directory_exists:
        directory = scanner.canonical_root(directory)
        plan.directory = directory
        stored = {k: replace(r, root_path=directory) for k, r in stored.items()}
        for record in scanner.scan(directory, options.scan):
            if is_unsafe(record.relative_path):
                logger.warning(f"DISCARDED local '{record.relative_path}': unsafe.")
                continue
            if record.key in local:
                logger.warning(
                    f"DISCARDED local '{record.relative_path}': same path as "
                    f"'{local[record.key].relative_path}'."
                )
                continue
            local[record.key] = record
    else:
        logger.warning(f"{directory} does not exist; treating it as empty.")

    # 3-5. Merge.
    changed = stored_altered
    merged: dict[str, RepositoryRecord] = dict(local)
    machine = options.restore.machine_name

    for key, record in local.items():
        if key not in stored:
            logger.info(f"NEW {record.relative_path}")
            changed = True
            continue
        combined = merge_record(record, stored[key])
        merged[key] = combined
        if combined != stored[key]:
            changed = True

    for key, record in stored.items():
        if key in local:
            continue
        canonical = normalize(record.relative_path)
        if canonical != record.relative_path:
            record = replace(record, relative_path=canonical)
            changed = True
        merged[key] = record
        if not record.has_remote:
            logger.warning(f"UNCLONABLE {record.relative_path}: no remote URL.")
            plan.unclonable.append(record)
        elif machine is not None and not matches_system(
            record.system_filter, machine
        ):
            logger.info(
                f"FILTERED {record.relative_path}: '{record.system_filter}' "
                f"excludes {machine}."
            )
            plan.filtered_out.append(record)
        else:
            plan.clone_queue.append(record)

    plan.merged = sorted(merged.values(), key=_sort_key)
    plan.clone_queue.sort(key=_sort_key)
    plan.file_needs_write = not plan.file_existed or changed
    return plan


def run_sync(
    directory: Path,
    list_path: Path,
    options: SyncOptions | None = None,
    confirm: Callable[[str], bool] | None = None,
) -> SyncResult:
    """Reconciles a directory with an inventory, clones and writes back.

    Args:
        directory (Path): The local directory.
        list_path (Path): The inventory file.
        options (SyncOptions | None, optional): Sync settings.
        confirm (Callable[[str], bool] | None, optional): Asked before the
            directory is created.

    Returns:
        SyncResult: The plan, the clone outcomes and whether the file changed.

    Raises:
        codec.InventoryError: If the inventory cannot be loaded or written.
    """
    options = options or SyncOptions()
    plan = reconcile(directory, list_path, options, confirm)
    result = SyncResult(plan=plan)

    if plan.clone_queue:
        if plan.directory_exists or options.dry_run:
            policy = replace(options.restore, dry_run=options.dry_run)
            result.outcomes = restore(plan.clone_queue, plan.directory, policy)
        else:
            logger.warning(
                f"SKIPPED {len(plan.clone_queue)} clones: {plan.directory} "
                "is unavailable."
            )

    if plan.file_needs_write:
        if options.dry_run:
            logger.info(f"DRY RUN: would write {len(plan.merged)} records.")
        else:
            codec.dump(plan.merged, plan.list_path)
            result.written = True
            logger.info(f"WROTE {len(plan.merged)} records to {plan.list_path}.")
    else:
        logger.debug(f"{plan.list_path} is up to date.")

    return result


def options_from_config(
    config: Config,
    dry_run: bool = False,
    force: bool | None = None,
    skip_existing: bool | None = None,
) -> SyncOptions:
    """Builds sync settings from the configuration and command-line overrides.

    Args:
        config (Config): The loaded configuration.
        dry_run (bool, optional): Plan only.
        force (bool | None, optional): Overrides `restore.force`.
        skip_existing (bool | None, optional): Overrides `restore.skip_existing`.

    Returns:
        SyncOptions: The settings for `reconcile` and `run_sync`.
    """
    overwrite = config.restore.force if force is None else force
    skip = config.restore.skip_existing if skip_existing is None else skip_existing
    if force and skip_existing is None:
        # An explicit force beats a configured skip.
        skip = False

    return SyncOptions(
        scan=ScanOptions(
            remote_name=config.core.remote_name,
            skip_accessibility_check=config.scan.skip_accessibility_check,
            git_executable=config.core.git_executable,
            probe_timeout=config.scan.probe_timeout,
        ),
        restore=RestorePolicy(
            overwrite_existing=overwrite,
            skip_existing=skip,
            git_executable=config.core.git_executable,
            dry_run=dry_run,
            machine_name=system.get_machine_name(config.core.machine_name),
        ),
        dry_run=dry_run,
    )
