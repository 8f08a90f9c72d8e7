import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL

console = Console()

DAEMON_EXECUTABLE = "git-roster-daemon"


def get_executable() -> str:
    """Locates the installed sync runner in the system path.

    Returns:
        str: The absolute path to the 'git-roster-daemon' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which(DAEMON_EXECUTABLE)
    if not exe:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not find '{DAEMON_EXECUTABLE}'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_dir() -> Path:
    """Resolves the systemd user unit directory.

    Raises:
        NotImplementedError: If called on a platform without systemd user units.
    """
    if sys.platform.startswith("linux"):
        return Path.home() / ".config/systemd/user"

    raise NotImplementedError("Scheduled sync is only supported with systemd.")


def render_units(executable: str, interval: int) -> tuple[str, str]:
    """Builds the .service and .timer unit file contents.

    Args:
        executable (str): The path to the sync runner.
        interval (int): Seconds between runs.

    Returns:
        tuple[str, str]: The service unit and the timer unit.
    """
    service_content = f"""[Unit]
Description=Git Roster Scheduled Sync

[Service]
Type=oneshot
ExecStart={executable}
"""
    timer_content = f"""[Unit]
Description=Run Git Roster sync every {interval} seconds

[Timer]
OnBootSec=5min
OnUnitActiveSec={interval}s
Unit={APP_LABEL}.service

[Install]
WantedBy=timers.target
"""
    return service_content, timer_content


def install_linux(unit_dir: Path, executable: str, interval: int) -> None:
    """Configures and enables a systemd user timer for Linux.

    Creates the .service and .timer unit files in the user's systemd configuration
    directory, reloads the daemon, and enables the timer.

    Args:
        unit_dir (Path): The systemd user unit directory.
        executable (str): The path to the sync runner.
        interval (int): The sync interval in seconds.
    """
    unit_dir.mkdir(parents=True, exist_ok=True)

    service_file = unit_dir / f"{APP_LABEL}.service"
    timer_file = unit_dir / f"{APP_LABEL}.timer"
    service_content, timer_content = render_units(executable, interval)

    with open(service_file, "w") as f:
        f.write(service_content)
    with open(timer_file, "w") as f:
        f.write(timer_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", f"{APP_LABEL}.timer"], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] Roster systemd timer active.\n"
        f"Check status: systemctl --user status {APP_LABEL}.timer"
    )


def install(interval: int = 3600, dry_run: bool = False) -> None:
    """Installs the scheduled sync.

    Args:
        interval (int, optional): Seconds between sync runs. Defaults to 3600.
        dry_run (bool, optional): Print the units instead of installing them.
    """
    if not sys.platform.startswith("linux"):
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] Scheduled sync is only supported "
            "with systemd. Run 'git-roster-daemon' from your own scheduler."
        )
        return

    unit_dir = get_unit_dir()
    if dry_run:
        service_content, timer_content = render_units(DAEMON_EXECUTABLE, interval)
        console.print(f"[dim]Would write to {unit_dir}:[/dim]")
        console.print(service_content, markup=False)
        console.print(timer_content, markup=False)
        return

    exe = get_executable()
    console.print(f"Installing scheduled sync (interval: {interval}s)...")
    install_linux(unit_dir, exe, interval)


def uninstall() -> None:
    """Disables the systemd units and removes the files."""
    if not sys.platform.startswith("linux"):
        console.print("[dim]No scheduled sync to remove on this platform.[/dim]")
        return

    unit_dir = get_unit_dir()
    timer_name = f"{APP_LABEL}.timer"
    subprocess.run(
        ["systemctl", "--user", "disable", "--now", timer_name],
        stderr=subprocess.DEVNULL,
    )

    # Remove .service and .timer files.
    for path in (unit_dir / f"{APP_LABEL}.service", unit_dir / timer_name):
        if path.exists():
            path.unlink()

    subprocess.run(["systemctl", "--user", "daemon-reload"])
    console.print("[bold green]SUCCESS:[/bold green] Scheduled sync removed.")
