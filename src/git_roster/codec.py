"""Reading and writing inventory files.

The format is chosen once from the file extension; everything past this
module works with `RepositoryRecord` sequences only.
"""

import contextlib
import csv
import io
import json
import logging
import os
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import APP_NAME
from .models import RepositoryRecord

logger = logging.getLogger(APP_NAME)

FIELDS = [
    "root_path",
    "relative_path",
    "full_path",
    "remote_name",
    "remote_url",
    "is_remote_accessible",
    "user_name",
    "user_email",
    "status_date",
    "system_filter",
]
"""list[str]: Column order of an inventory. `full_path` is informational only."""


class InventoryError(RuntimeError):
    """Raised when an inventory file cannot be read, parsed or written."""


class InventoryFormat(Enum):
    """Supported inventory encodings."""

    JSON = "json"
    CSV = "csv"

    @classmethod
    def from_path(cls, path: Path) -> "InventoryFormat":
        """Picks the format matching a file extension.

        Raises:
            InventoryError: If the extension is not supported.
        """
        suffix = path.suffix.lower().lstrip(".")
        for fmt in cls:
            if fmt.value == suffix:
                return fmt
        raise InventoryError(
            f"Unsupported inventory extension '{path.suffix}' "
            f"(expected one of: {', '.join('.' + f.value for f in cls)})"
        )


def _optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_bool(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return None


def _parse_date(value: Any) -> datetime | None:
    text = _optional(value)
    if text is None:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Ignoring invalid status_date '{text}'.")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def record_to_dict(record: RepositoryRecord) -> dict[str, Any]:
    """Flattens a record into the field layout of an inventory file."""
    return {
        "root_path": str(record.root_path),
        "relative_path": record.relative_path,
        "full_path": str(record.full_path),
        "remote_name": record.remote_name,
        "remote_url": record.remote_url,
        "is_remote_accessible": record.is_remote_accessible,
        "user_name": record.user_name,
        "user_email": record.user_email,
        "status_date": (
            record.status_date.isoformat() if record.status_date else None
        ),
        "system_filter": record.system_filter,
    }


def record_from_dict(data: dict[str, Any]) -> RepositoryRecord:
    """Builds a record from one inventory entry.

    Empty strings read back as None. `full_path` is ignored because it is
    always derived from `root_path` and `relative_path`. The relative path is
    kept as written; callers normalize and validate it before use.

    Args:
        data (dict[str, Any]): The decoded entry.

    Returns:
        RepositoryRecord: The record.
    """
    root = _optional(data.get("root_path"))
    relative = data.get("relative_path")
    return RepositoryRecord(
        root_path=Path(root) if root else Path(),
        relative_path="" if relative is None else str(relative),
        remote_name=_optional(data.get("remote_name")),
        remote_url=_optional(data.get("remote_url")),
        is_remote_accessible=_parse_bool(data.get("is_remote_accessible")),
        user_name=_optional(data.get("user_name")),
        user_email=_optional(data.get("user_email")),
        status_date=_parse_date(data.get("status_date")),
        system_filter=_optional(data.get("system_filter")),
    )


def _decode_json(text: str) -> list[dict[str, Any]]:
    data = json.loads(text) if text.strip() else []
    # A single repository may have been written as a bare object.
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        raise InventoryError("Expected a JSON list of repository objects")
    return data


def _decode_csv(text: str) -> list[dict[str, Any]]:
    if not text.strip():
        return []
    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames is None:
        return []
    if "relative_path" not in reader.fieldnames:
        raise InventoryError("CSV inventory is missing the 'relative_path' column")
    return list(reader)


def load(path: Path, fmt: InventoryFormat | None = None) -> list[RepositoryRecord]:
    """Reads an inventory file.

    Args:
        path (Path): The inventory file.
        fmt (InventoryFormat | None, optional): The encoding. Defaults to the
                                                one matching the extension.

    Returns:
        list[RepositoryRecord]: The records, in file order.

    Raises:
        InventoryError: If the file cannot be read or decoded.
    """
    fmt = fmt or InventoryFormat.from_path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise InventoryError(f"Could not read {path}: {e}") from e

    try:
        if fmt is InventoryFormat.JSON:
            entries = _decode_json(text)
        else:
            entries = _decode_csv(text)
    except (json.JSONDecodeError, csv.Error) as e:
        raise InventoryError(f"Could not parse {path}: {e}") from e

    records = [record_from_dict(entry) for entry in entries]
    logger.debug(f"Loaded {len(records)} records from {path}.")
    return records


def _encode(records: list[RepositoryRecord], fmt: InventoryFormat) -> str:
    rows = [record_to_dict(r) for r in records]
    if fmt is InventoryFormat.JSON:
        return json.dumps(rows, indent=2) + "\n"

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=FIELDS, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        if row["is_remote_accessible"] is not None:
            row["is_remote_accessible"] = str(row["is_remote_accessible"]).lower()
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buffer.getvalue()


def dump(
    records: Iterable[RepositoryRecord],
    path: Path,
    fmt: InventoryFormat | None = None,
) -> None:
    """Writes an inventory file atomically.

    The content goes to a temporary sibling first, is flushed to disk, then
    replaces the target in one rename.

    Args:
        records (Iterable[RepositoryRecord]): The records to write, in order.
        path (Path): The inventory file.
        fmt (InventoryFormat | None, optional): The encoding. Defaults to the
                                                one matching the extension.

    Raises:
        InventoryError: If the file cannot be written.
    """
    fmt = fmt or InventoryFormat.from_path(path)
    content = _encode(list(records), fmt)
    tmp_file = path.with_name(path.name + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_file, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp_file.unlink()
        raise InventoryError(f"Could not write {path}: {e}") from e

    logger.debug(f"Wrote inventory to {path}.")
