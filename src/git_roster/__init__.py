"""Git Roster: Inventory, restore and sync git repositories across machines.

This package provides the command-line interface, the scheduled sync runner,
and the core logic for discovering repositories below a directory, writing
them to a portable inventory file, and cloning them back from one.
"""

from . import (
    cli,
    codec,
    config,
    constants,
    daemon,
    gist,
    git_wrapper,
    inspector,
    models,
    paths,
    restore,
    scanner,
    service,
    sync,
    system,
)

__all__ = [
    "cli",
    "codec",
    "config",
    "constants",
    "daemon",
    "gist",
    "git_wrapper",
    "inspector",
    "models",
    "paths",
    "restore",
    "scanner",
    "service",
    "sync",
    "system",
]
