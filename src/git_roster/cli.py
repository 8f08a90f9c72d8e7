import argparse
import logging
import os
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from . import codec, gist, scanner, service, sync
from .codec import InventoryError
from .config import Config, parse_time
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE
from .gist import GistError
from .models import RepositoryRecord, RestoreOutcome, RestoreStatus
from .restore import restore
from .scanner import ScanOptions

logger = logging.getLogger(APP_NAME)
console = Console()

STATUS_STYLES = {
    RestoreStatus.CLONED: "green",
    RestoreStatus.SKIPPED: "yellow",
    RestoreStatus.FAILED: "bold red",
}


def fail(message: str) -> NoReturn:
    """Prints a fatal error and exits with status 1."""
    console.print(f"[bold red]ERROR:[/bold red] {message}")
    sys.exit(1)


def setup_logging(verbose: bool) -> None:
    """Routes log records to stderr so they never mix with tables on stdout.

    Args:
        verbose (bool): Include debug messages.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _format_accessible(value: bool | None) -> str:
    if value is None:
        return "[dim]unknown[/dim]"
    return "[green]yes[/green]" if value else "[red]no[/red]"


def render_records(records: Iterable[RepositoryRecord], title: str) -> Table:
    """Builds a table listing inventory records.

    Args:
        records (Iterable[RepositoryRecord]): The records to show.
        title (str): The table title.

    Returns:
        Table: A rich table with one row per record.
    """
    table = Table(title=title, show_lines=False)
    table.add_column("Path", style="cyan", no_wrap=True)
    table.add_column("Remote URL")
    table.add_column("Reachable", justify="center")
    table.add_column("Last Activity", style="dim")
    table.add_column("Filter", style="magenta")

    for record in records:
        table.add_row(
            record.relative_path,
            record.remote_url or "[dim]none[/dim]",
            _format_accessible(record.is_remote_accessible),
            record.status_date.strftime("%Y-%m-%d %H:%M") if record.status_date else "",
            record.system_filter or "",
        )
    return table


def render_outcomes(outcomes: Iterable[RestoreOutcome]) -> Table:
    """Builds a table of restore outcomes."""
    table = Table(title="Restore Results")
    table.add_column("Status", justify="right")
    table.add_column("Target", style="cyan")
    table.add_column("Details")

    for outcome in outcomes:
        style = STATUS_STYLES[outcome.status]
        table.add_row(
            f"[{style}]{outcome.status.value}[/{style}]",
            str(outcome.target_path or ""),
            outcome.reason,
        )
    return table


def summarize_outcomes(outcomes: list[RestoreOutcome]) -> int:
    """Prints the outcome counts.

    Returns:
        int: The number of failed clones.
    """
    counts = {status: 0 for status in RestoreStatus}
    for outcome in outcomes:
        counts[outcome.status] += 1

    console.print(
        f"[green]{counts[RestoreStatus.CLONED]} cloned[/green], "
        f"[yellow]{counts[RestoreStatus.SKIPPED]} skipped[/yellow], "
        f"[red]{counts[RestoreStatus.FAILED]} failed[/red]"
    )
    return counts[RestoreStatus.FAILED]


def run_scan(args: argparse.Namespace, config: Config) -> None:
    """Scans a directory tree and optionally writes the inventory."""
    options = ScanOptions(
        remote_name=args.remote or config.core.remote_name,
        skip_accessibility_check=(
            args.skip_accessibility_check or config.scan.skip_accessibility_check
        ),
        git_executable=config.core.git_executable,
        probe_timeout=config.scan.probe_timeout,
    )

    try:
        with console.status(f"Scanning {args.root}...", spinner="dots"):
            records = scanner.scan(Path(args.root), options)
    except OSError as e:
        fail(f"Cannot scan {args.root}: {e}")

    records.sort(key=lambda r: r.relative_path.casefold())
    if not records:
        console.print("[yellow]No repositories found.[/yellow]")
    else:
        console.print(render_records(records, f"Repositories ({len(records)})"))

    if args.output:
        output = Path(args.output).expanduser()
        try:
            codec.dump(records, output)
        except InventoryError as e:
            fail(str(e))
        console.print(
            f"[bold green]SUCCESS:[/bold green] Wrote {len(records)} records "
            f"to [cyan]{output}[/cyan]."
        )


def run_restore(args: argparse.Namespace, config: Config) -> None:
    """Clones every repository listed in an inventory file."""
    list_path = Path(args.file).expanduser()
    try:
        records = codec.load(list_path)
    except InventoryError as e:
        fail(str(e))

    destination = Path(
        args.destination or config.sync.directory or Path.cwd()
    ).expanduser()
    policy = sync.options_from_config(
        config, args.dry_run, args.force, args.skip_existing
    ).restore

    if args.dry_run:
        console.print("[bold yellow]DRY RUN:[/bold yellow] nothing will be changed.")
    console.print(
        f"Restoring {len(records)} repositories into [cyan]{destination}[/cyan]..."
    )

    outcomes = restore(records, destination, policy)
    if outcomes:
        console.print(render_outcomes(outcomes))
    if summarize_outcomes(outcomes):
        sys.exit(1)


def run_sync(args: argparse.Namespace, config: Config) -> None:
    """Reconciles a directory with an inventory file."""
    directory = args.directory or config.sync.directory
    list_path = args.list or config.sync.list_path
    if not directory:
        fail("No directory given. Pass -d or set sync.directory in the config.")
    if not list_path:
        fail("No inventory given. Pass -l or set sync.list_path in the config.")

    directory, list_path = Path(directory).expanduser(), Path(list_path).expanduser()
    options = sync.options_from_config(
        config, args.dry_run, args.force, args.skip_existing
    )

    def confirm(question: str) -> bool:
        return Confirm.ask(question, default=True)

    if args.dry_run:
        console.print("[bold yellow]DRY RUN:[/bold yellow] nothing will be changed.")
    console.print(f"Syncing [cyan]{directory}[/cyan] with [cyan]{list_path}[/cyan]...")

    try:
        result = sync.run_sync(
            directory, list_path, options, confirm=None if args.yes else confirm
        )
    except (InventoryError, OSError) as e:
        fail(str(e))

    plan = result.plan
    if args.dry_run:
        file_state = "would be written" if plan.file_needs_write else "up to date"
    else:
        file_state = "written" if result.written else "up to date"

    summary = (
        f"Records:     {len(plan.merged)}\n"
        f"To clone:    {len(plan.clone_queue)}\n"
        f"Unclonable:  {len(plan.unclonable)}\n"
        f"Filtered:    {len(plan.filtered_out)}\n"
        f"Inventory:   {file_state}"
    )
    console.print(Panel(summary, title="Sync", border_style="blue", expand=False))

    for record in plan.unclonable:
        console.print(f"[yellow]No remote URL:[/yellow] {record.relative_path}")

    failed = 0
    if result.outcomes:
        console.print(render_outcomes(result.outcomes))
        failed = summarize_outcomes(result.outcomes)

    if (args.publish or config.sync.publish) and result.written:
        _publish(list_path, config.gist.gist_id, config.gist.public, config)

    if failed:
        sys.exit(1)


def _publish(path: Path, gist_id: str | None, public: bool, config: Config) -> None:
    try:
        with console.status(f"Publishing {path.name}...", spinner="dots"):
            published = gist.publish_configured(
                path, gist_id, public, config.gist.description
            )
    except GistError as e:
        fail(str(e))

    console.print(
        f"[bold green]SUCCESS:[/bold green] Published to [link={published.url}]"
        f"{published.url or published.gist_id}[/link]"
    )


def run_publish(args: argparse.Namespace, config: Config) -> None:
    """Uploads an inventory file to a gist."""
    path = Path(args.file).expanduser()
    if not path.is_file():
        fail(f"{path} does not exist.")
    _publish(
        path,
        args.gist_id or config.gist.gist_id,
        args.public or config.gist.public,
        config,
    )


def run_schedule(args: argparse.Namespace, config: Config) -> None:
    """Installs or removes the scheduled sync."""
    if args.action == "uninstall":
        with console.status("Removing scheduled sync...", spinner="dots"):
            service.uninstall()
        return

    interval = config.sync.interval
    if args.interval:
        try:
            interval = parse_time(args.interval)
        except ValueError as e:
            fail(str(e))
    if interval <= 0:
        fail("The interval must be positive.")

    if not (config.sync.directory and config.sync.list_path):
        console.print(
            "[bold yellow]WARNING:[/bold yellow] Set sync.directory and "
            "sync.list_path in the config before the first run."
        )
    service.install(interval=interval, dry_run=args.dry_run)


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# Git Roster Configuration\n\n"
                "[sync]\n"
                '# directory = "~/src"\n'
                '# list_path = "~/Dropbox/repos.json"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Roster Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    rows = [
        ("core", "remote_name", "str", '"origin"', "Remote read from each repo."),
        ("", "git_executable", "str", '"git"', "Git binary used for clones."),
        (
            "",
            "machine_name",
            "str",
            "hostname",
            "Name matched against system_filter patterns.",
        ),
        (
            "scan",
            "skip_accessibility_check",
            "bool",
            "false",
            "Skip `git ls-remote` probes while scanning.",
        ),
        ("", "probe_timeout", "int | str", '"10s"', "Time allowed per probe."),
        (
            "restore",
            "skip_existing",
            "bool",
            "true",
            "Silently leave existing directories alone.",
        ),
        ("", "force", "bool", "false", "Replace existing directories with a clone."),
        ("sync", "directory", "path", "None", "Directory kept in sync."),
        ("", "list_path", "path", "None", "Shared inventory file (.json or .csv)."),
        ("", "interval", "int | str", '"1h"', "Time between scheduled syncs."),
        ("", "publish", "bool", "false", "Upload the inventory after each write."),
        ("gist", "gist_id", "str", "None", "Gist to update; created when unset."),
        ("", "public", "bool", "false", "Visibility of a newly created gist."),
        (
            "",
            "description",
            "str",
            '"git-roster inventory"',
            "Gist description.",
        ),
        (
            "limits",
            "max_log_size",
            "int | str",
            '"5mb"',
            "Max size for log files before rotation (e.g., '5mb', '1gb').",
        ),
    ]
    for row in rows:
        table.add_row(*row)

    console.print(table)
    console.print(
        "[dim]Gist publishing reads its token from the GITHUB_TOKEN "
        "environment variable.[/dim]"
    )


def tail_log() -> None:
    """Follows the scheduled sync log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


class RosterHelpFormatter(argparse.HelpFormatter):
    """Custom help formatter that groups subcommands into categories."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Inventory": ["scan", "restore", "sync", "publish"],
                "Scheduling": ["schedule", "log"],
                "General": ["config", "help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def _add_policy_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        default=None,
        help="Replace existing directories with a fresh clone",
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        default=None,
        help="Leave existing directories alone without warning",
    )
    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help="Show what would happen without changing anything",
    )


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        usage=argparse.SUPPRESS,
        formatter_class=RosterHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help=argparse.SUPPRESS
    )

    subparsers = parser.add_subparsers(dest="command")

    scan_parser = subparsers.add_parser(
        "scan", help="List repositories below a directory"
    )
    scan_parser.add_argument("root", help="Directory to scan")
    scan_parser.add_argument(
        "--output", "-o", help="Write the inventory to this .json or .csv file"
    )
    scan_parser.add_argument("--remote", help="Remote to read (default: origin)")
    scan_parser.add_argument(
        "--skip-accessibility-check",
        action="store_true",
        help="Do not probe remotes with git ls-remote",
    )

    restore_parser = subparsers.add_parser(
        "restore", help="Clone the repositories listed in an inventory"
    )
    restore_parser.add_argument("file", help="Inventory file (.json or .csv)")
    restore_parser.add_argument(
        "--destination", "-d", help="Directory to clone into (default: sync.directory)"
    )
    _add_policy_flags(restore_parser)

    sync_parser = subparsers.add_parser(
        "sync", help="Reconcile a directory with a shared inventory"
    )
    sync_parser.add_argument("--directory", "-d", help="Local directory")
    sync_parser.add_argument("--list", "-l", help="Inventory file")
    _add_policy_flags(sync_parser)
    sync_parser.add_argument(
        "--yes", "-y", action="store_true", help="Create the directory without asking"
    )
    sync_parser.add_argument(
        "--publish", action="store_true", help="Upload the inventory if it changed"
    )

    publish_parser = subparsers.add_parser(
        "publish", help="Upload an inventory to a GitHub gist"
    )
    publish_parser.add_argument("file", help="Inventory file")
    publish_parser.add_argument("--gist-id", help="Gist to update")
    publish_parser.add_argument(
        "--public", action="store_true", help="Create the gist as public"
    )

    schedule_parser = subparsers.add_parser(
        "schedule", help="Install or remove the scheduled sync"
    )
    schedule_sub = schedule_parser.add_subparsers(dest="action", required=True)
    install_parser = schedule_sub.add_parser("install", help="Install the timer")
    install_parser.add_argument(
        "--interval", help="Time between runs, e.g. '30m' (default: sync.interval)"
    )
    install_parser.add_argument(
        "--dry-run", "-n", action="store_true", help="Print the units only"
    )
    schedule_sub.add_parser("uninstall", help="Remove the timer")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("log", help="Tail the scheduled sync log file")
    subparsers.add_parser("help", help="Show this help message")

    return parser


def main() -> None:
    """Main entry point for the Git Roster CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command in (None, "help"):
        parser.print_help()
        return

    setup_logging(args.verbose)

    if args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
        return
    elif args.command == "log":
        tail_log()
        return

    config = Config.load()
    commands = {
        "scan": run_scan,
        "restore": run_restore,
        "sync": run_sync,
        "publish": run_publish,
        "schedule": run_schedule,
    }
    commands[args.command](args, config)


if __name__ == "__main__":
    main()
