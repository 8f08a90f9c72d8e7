import logging
import socket
import subprocess
import sys
from pathlib import Path

from .constants import APP_NAME, MACHINE_NAME_FILE

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining the interface for system-level interactions."""

    def notify(self, title: str, message: str) -> None:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
        """
        pass


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{title}"'
        try:
            subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"Notification failed: {e}")


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using `notify-send`."""
        try:
            subprocess.run(["notify-send", title, message], stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            pass


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()


def get_machine_name_file() -> Path:
    """Returns the path to the configured human-readable name file."""
    return Path(MACHINE_NAME_FILE)


def get_machine_name(configured: str | None = None) -> str:
    """Resolves the name this machine is known by in system filters.

    The resolution order is:
    1. The `core.machine_name` config value.
    2. The name file (~/.config/git-roster/machine_name).
    3. The short hostname.

    Args:
        configured (str | None): The value from the config file, if any.

    Returns:
        str: The machine name.
    """
    if configured and configured.strip():
        return configured.strip()

    name_file = get_machine_name_file()
    try:
        if name_file.exists():
            name = name_file.read_text().strip()
            if name:
                return name
    except OSError as e:
        logger.debug(f"Could not read {name_file}: {e}")

    return socket.gethostname().split(".")[0]
