"""Relative path validation for paths sourced from inventory files.

Relative paths are stored with `/` as the only separator and `.` for the root
itself. Anything read from an inventory must pass through `normalize` and
`is_unsafe` before it is joined onto a local directory.
"""

import os
import re
import sys
from pathlib import Path

ROOT_MARKER = "."
"""str: The canonical relative path of a repository located at the root."""

_UNSAFE_PATTERN = re.compile(r"^[\\/]|:|(^|[\\/])\.\.([\\/]|$)")


class OutOfScopeError(ValueError):
    """Raised when a relative path resolves outside of its root directory."""


def is_unsafe(relative_path: str) -> bool:
    """Checks whether a relative path could escape the directory it is joined to.

    A path is unsafe if it starts with a separator, carries a drive or volume
    marker (any colon), or contains a `..` segment.

    Args:
        relative_path (str): The path to check, with either separator.

    Returns:
        bool: True if the path must be rejected, False otherwise.
    """
    return bool(_UNSAFE_PATTERN.search(relative_path))


def normalize(path: str | None) -> str:
    """Converts a relative path to its canonical form.

    Surrounding whitespace is trimmed, backslashes become forward slashes,
    repeated separators collapse, leading and trailing separators are stripped
    and `.` segments are dropped. Whitespace inside a segment is kept, since
    directory names may contain it. An empty result is the root marker `.`.

    Args:
        path (str | None): The raw relative path.

    Returns:
        str: The canonical relative path. Applying this twice is a no-op.
    """
    if path is None:
        return ROOT_MARKER
    segments = [
        segment
        for segment in path.strip().replace("\\", "/").split("/")
        if segment and segment != ROOT_MARKER
    ]
    joined = "/".join(segments)
    if joined != joined.strip():
        # Dropping leading segments exposed whitespace, e.g. "./ x".
        return normalize(joined)
    return joined or ROOT_MARKER


def _is_case_insensitive() -> bool:
    return sys.platform == "win32" or sys.platform == "darwin"


def resolve_within_root(root: Path, relative_path: str) -> Path:
    """Joins a relative path onto a root and checks it stays inside that root.

    Neither path needs to exist. Comparison is case-insensitive on platforms
    whose default filesystems are.

    Args:
        root (Path): The destination root directory.
        relative_path (str): The relative path of the repository.

    Returns:
        Path: The absolute, canonical target path.

    Raises:
        OutOfScopeError: If the target is not the root or a descendant of it.
    """
    canonical_root = Path(os.path.abspath(os.path.expanduser(root)))
    canonical_root = canonical_root.resolve(strict=False)

    normalized = normalize(relative_path)
    if normalized == ROOT_MARKER:
        target = canonical_root
    else:
        target = (canonical_root / normalized).resolve(strict=False)

    root_str, target_str = str(canonical_root), str(target)
    if _is_case_insensitive():
        root_str, target_str = root_str.casefold(), target_str.casefold()

    prefix = root_str if root_str.endswith(os.sep) else root_str + os.sep
    if target_str != root_str and not target_str.startswith(prefix):
        raise OutOfScopeError(
            f"Path '{relative_path}' resolves outside of {canonical_root}"
        )
    return target
