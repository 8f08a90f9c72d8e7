import os
from pathlib import Path

"""Global constants and configuration path definitions for Git Roster.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the Git conventions the scanner relies on.
"""

# --- Identity ---
APP_NAME = "git-roster"
"""str: The human-readable application name."""

APP_LABEL = "com.gitroster.sync"
"""str: The reverse-DNS style application identifier."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-roster"
"""Path: The directory for runtime state data (logs, locks)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the scheduled sync logs."""

LOCK_DIR = STATE_DIR / "locks"
"""Path: The directory holding per-target sync lock files."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-roster"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

MACHINE_NAME_FILE: Path = CONFIG_DIR / "machine_name"
"""Path: The file path storing an explicit name for this machine."""

# --- Git Constants ---
REPO_MARKER = ".git"
"""str: The directory name identifying a repository root."""

DEFAULT_REMOTE = "origin"
"""str: The remote read from each repository unless configured otherwise."""

DEFAULT_PROBE_TIMEOUT = 10
"""int: Seconds allowed for a `git ls-remote` reachability probe."""

STALE_LOCK_SECONDS = 24 * 3600
"""int: Age after which an abandoned sync lock may be taken over."""

# --- Gist ---
GIST_API_URL = "https://api.github.com/gists"
"""str: The GitHub endpoint used to publish inventories."""

GIST_TOKEN_ENV = "GITHUB_TOKEN"
"""str: Environment variable holding the token used for gist publishing."""
