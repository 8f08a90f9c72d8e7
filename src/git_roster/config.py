import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REMOTE,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_path(value: str | Path | None) -> Path | None:
    """Expands a user-supplied path, treating empty strings as unset."""
    if value is None or not str(value).strip():
        return None
    return Path(str(value)).expanduser()


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The remote read from each repository.
        git_executable (str): The git binary used for clones and probes.
        machine_name (str | None): Name matched against system filters.
                                   Defaults to the short hostname.
    """

    remote_name: str = DEFAULT_REMOTE
    git_executable: str = "git"
    machine_name: str | None = None


@dataclass
class ScanConfig:
    """Repository discovery settings.

    Attributes:
        skip_accessibility_check (bool): Skip `git ls-remote` probes.
        probe_timeout (int): Seconds allowed per probe.
    """

    skip_accessibility_check: bool = False
    probe_timeout: int = DEFAULT_PROBE_TIMEOUT


@dataclass
class RestoreConfig:
    """Existing-directory policy for restores and syncs.

    Attributes:
        skip_existing (bool): Leave existing directories alone silently.
        force (bool): Replace existing directories with a fresh clone.
    """

    skip_existing: bool = True
    force: bool = False


@dataclass
class SyncConfig:
    """Defaults for `sync` and the scheduled runner.

    Attributes:
        directory (Path | None): The local directory kept in sync.
        list_path (Path | None): The shared inventory file.
        interval (int): Seconds between scheduled runs.
        publish (bool): Upload the inventory to a gist after each write.
    """

    directory: Path | None = None
    list_path: Path | None = None
    interval: int = 3600
    publish: bool = False


@dataclass
class GistConfig:
    """Gist publishing settings. The token is read from the environment.

    Attributes:
        gist_id (str | None): The gist to update. A new one is created if unset.
        public (bool): Whether newly created gists are public.
        description (str): The gist description.
    """

    gist_id: str | None = None
    public: bool = False
    description: str = "git-roster inventory"


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        scan (ScanConfig): Discovery settings.
        restore (RestoreConfig): Existing-directory policy.
        sync (SyncConfig): Sync targets and schedule.
        gist (GistConfig): Publishing settings.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    restore: RestoreConfig = field(default_factory=RestoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    gist: GistConfig = field(default_factory=GistConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults and the config file.

        Args:
            path (Path | None): The TOML file to read. Defaults to CONFIG_FILE.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        config_file = path or CONFIG_FILE
        if config_file.exists():
            instance._merge_from_file(config_file)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        unknown = set(data) - set(self.__dataclass_fields__)
        if unknown:
            logger.warning(
                f"Unknown config sections: {', '.join(sorted(unknown))}. Ignoring."
            )

        for section in self.__dataclass_fields__:
            updates = data.get(section)
            if isinstance(updates, dict):
                current = getattr(self, section)
                setattr(self, section, self._update_dataclass(section, current, updates))

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["probe_timeout", "interval"]:
                    filtered_updates[k] = parse_time(v)
                elif k in ["directory", "list_path"]:
                    filtered_updates[k] = parse_path(v)
                elif isinstance(getattr(instance, k), bool) and not isinstance(
                    v, bool
                ):
                    raise ValueError(f"Expected true or false, got '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
