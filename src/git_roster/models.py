"""Value types shared by the scanner, the sync engine and the restore executor."""

import fnmatch
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .paths import ROOT_MARKER, normalize


@dataclass(frozen=True)
class RepositoryRecord:
    """One repository, either discovered on disk or read from an inventory.

    Records are never mutated; use `dataclasses.replace` to derive new ones.

    Attributes:
        root_path (Path): The scan or sync root the record is relative to.
        relative_path (str): Canonical `/`-separated path below the root
            (`.` for the root itself).
        remote_name (str | None): The remote the URL was read from.
        remote_url (str | None): The clone URL. Records without one cannot be
            cloned.
        is_remote_accessible (bool | None): Result of the reachability probe,
            or None if the remote was never probed.
        user_name (str | None): Repository-local `user.name`.
        user_email (str | None): Repository-local `user.email`.
        status_date (datetime | None): Time of the most recent activity.
        system_filter (str | None): Comma-separated machine name patterns
            deciding which machines sync this entry.
    """

    root_path: Path
    relative_path: str
    remote_name: str | None = None
    remote_url: str | None = None
    is_remote_accessible: bool | None = None
    user_name: str | None = None
    user_email: str | None = None
    status_date: datetime | None = None
    system_filter: str | None = None

    @property
    def full_path(self) -> Path:
        """Path: The absolute location, always derived from root and relative path."""
        if self.relative_path == ROOT_MARKER:
            return self.root_path
        return self.root_path.joinpath(*self.relative_path.split("/"))

    @property
    def has_remote(self) -> bool:
        """bool: Whether the record carries a non-blank clone URL."""
        return bool(self.remote_url and self.remote_url.strip())

    @property
    def key(self) -> str:
        """str: Case-insensitive identity of the normalized path within one root."""
        return normalize(self.relative_path).casefold()


class RestoreStatus(Enum):
    """Terminal states of a record processed by the restore executor."""

    CLONED = "cloned"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RestoreOutcome:
    """The result of restoring one record.

    Attributes:
        target_path (Path | None): Where the clone went (or would have gone).
            None when the record was rejected before a target was computed.
        remote_url (str | None): The URL of the record.
        status (RestoreStatus): The terminal state.
        reason (str): Why the record was skipped or failed, empty on success.
        exit_code (int | None): Exit code of a failed clone.
    """

    target_path: Path | None
    remote_url: str | None
    status: RestoreStatus
    reason: str = ""
    exit_code: int | None = None


def matches_system(system_filter: str | None, machine_name: str) -> bool:
    """Evaluates a system filter against a machine name.

    The filter is a comma-separated list of glob patterns. Patterns prefixed
    with `!` exclude, and an exclusion always beats an inclusion. A missing
    filter or `*` matches everything, as does a filter made only of
    exclusions that do not hit. Matching is case-insensitive.

    Args:
        system_filter (str | None): The filter stored on the record.
        machine_name (str): The name of the current machine.

    Returns:
        bool: True if the machine should sync the record.
    """
    if not system_filter or not system_filter.strip():
        return True

    name = machine_name.casefold()
    includes: list[str] = []
    excludes: list[str] = []
    for raw in system_filter.split(","):
        pattern = raw.strip().casefold()
        if not pattern:
            continue
        if pattern.startswith("!"):
            if pattern[1:].strip():
                excludes.append(pattern[1:].strip())
        else:
            includes.append(pattern)

    if any(fnmatch.fnmatchcase(name, p) for p in excludes):
        return False
    if not includes:
        return True
    return any(fnmatch.fnmatchcase(name, p) for p in includes)
