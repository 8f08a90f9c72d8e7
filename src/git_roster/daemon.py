import hashlib
import logging
import os
import sys
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator

from .codec import InventoryError
from .config import Config
from .constants import APP_NAME, LOCK_DIR, LOG_FILE, STALE_LOCK_SECONDS
from .gist import GistError, publish_configured
from .models import RestoreStatus
from .sync import SyncResult, options_from_config, run_sync
from .system import get_system

SYSTEM = get_system()

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

LOCK_ATTEMPTS = 5
LOCK_RETRY_DELAY = 2.0


class LockBusyError(RuntimeError):
    """Raised when another run holds the lock for the same sync target."""


def get_lock_file(directory: Path, list_path: Path) -> Path:
    """Returns the lock file guarding one directory/inventory pair.

    Args:
        directory (Path): The synced directory.
        list_path (Path): The inventory file.

    Returns:
        Path: A file under LOCK_DIR named after a hash of both paths.
    """
    key = f"{Path(directory).expanduser().absolute()}\0"
    key += str(Path(list_path).expanduser().absolute())
    digest = hashlib.sha256(key.encode()).hexdigest()[:16]
    return LOCK_DIR / f"sync-{digest}.lock"


def _is_stale(lock_file: Path) -> bool:
    try:
        age = time.time() - lock_file.stat().st_mtime
    except FileNotFoundError:
        return False
    return age > STALE_LOCK_SECONDS


def _try_create(lock_file: Path) -> int | None:
    try:
        return os.open(lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return None


@contextmanager
def sync_lock(
    directory: Path,
    list_path: Path,
    attempts: int = LOCK_ATTEMPTS,
    delay: float = LOCK_RETRY_DELAY,
) -> Iterator[Path]:
    """Holds an exclusive lock file for the duration of a sync.

    The lock is created with O_CREAT | O_EXCL. A busy lock is retried a few
    times; a lock older than STALE_LOCK_SECONDS is assumed abandoned and taken
    over.

    Args:
        directory (Path): The synced directory.
        list_path (Path): The inventory file.
        attempts (int, optional): How many times to try acquiring the lock.
        delay (float, optional): Seconds to wait between attempts.

    Yields:
        Path: The lock file.

    Raises:
        LockBusyError: If the lock could not be acquired.
    """
    lock_file = get_lock_file(directory, list_path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    for attempt in range(attempts):
        fd = _try_create(lock_file)
        if fd is None and _is_stale(lock_file):
            logger.warning(f"STALE LOCK {lock_file}: taking over.")
            lock_file.unlink(missing_ok=True)
            fd = _try_create(lock_file)
        if fd is not None:
            break
        if attempt < attempts - 1:
            time.sleep(delay)

    if fd is None:
        raise LockBusyError(f"Another sync is running ({lock_file}).")

    try:
        os.write(fd, str(os.getpid()).encode())
        os.close(fd)
        yield lock_file
    finally:
        lock_file.unlink(missing_ok=True)


def setup_logging(interactive: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int): Max bytes for the log file before rotation.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to a stream (stderr is captured by systemd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def report_failures(result: SyncResult) -> None:
    """Logs failed clones and raises a desktop notification for them."""
    failed = [o for o in result.outcomes if o.status is RestoreStatus.FAILED]
    if not failed:
        return

    for outcome in failed:
        logger.error(f"CLONE FAILED {outcome.target_path}: {outcome.reason}")
    SYSTEM.notify(
        "Git Roster", f"{len(failed)} repositories could not be cloned. See the log."
    )


def publish_inventory(config: Config, list_path: Path) -> bool:
    """Uploads the inventory to the configured gist.

    Returns:
        bool: True if the upload succeeded.
    """
    try:
        publish_configured(
            list_path,
            config.gist.gist_id,
            config.gist.public,
            config.gist.description,
        )
    except GistError as e:
        logger.error(f"PUBLISH ERROR {list_path.name}: {e}")
        return False
    return True


def main(interactive: bool = False) -> None:
    """Runs the configured sync once.

    Used by the scheduled timer. Reads the target directory and inventory from
    the config file, holds the per-target lock, and publishes the inventory
    afterwards when `sync.publish` is enabled.

    Args:
        interactive (bool, optional): Log to stdout instead of the log file.
                                      Defaults to False.
    """
    config = Config.load()
    setup_logging(interactive, config.limits.max_log_size)

    directory, list_path = config.sync.directory, config.sync.list_path
    if directory is None or list_path is None:
        logger.error(
            "Scheduled sync needs sync.directory and sync.list_path in the config."
        )
        sys.exit(1)

    try:
        with sync_lock(directory, list_path):
            result = run_sync(directory, list_path, options_from_config(config))
    except LockBusyError as e:
        logger.warning(f"SKIPPED run: {e}")
        return
    except InventoryError as e:
        logger.critical(f"CRITICAL {list_path}: {e}")
        SYSTEM.notify("Git Roster", f"Sync stopped: {e}")
        sys.exit(1)

    report_failures(result)

    if config.sync.publish and result.written:
        publish_inventory(config, list_path)

    logger.info(
        f"SYNC DONE {directory}: {len(result.plan.merged)} records, "
        f"{len(result.outcomes)} clones attempted."
    )


if __name__ == "__main__":
    main()
