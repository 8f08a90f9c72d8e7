"""Tests for the Command Line Interface (CLI) module."""

import json
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_roster import cli
from git_roster.config import Config
from git_roster.gist import GistError, PublishedGist

RepoFactory = Callable[..., Path]


@pytest.fixture
def config(mocker: MagicMock) -> Config:
    """Mocks Config.load and the CLI logging setup.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.

    Returns:
        Config: The configuration every command will see.
    """
    conf = Config()
    conf.core.machine_name = "laptop"
    conf.scan.skip_accessibility_check = True
    mocker.patch("git_roster.cli.Config.load", return_value=conf)
    mocker.patch("git_roster.cli.setup_logging")
    return conf


def run_cli(mocker: MagicMock, *argv: str) -> None:
    mocker.patch("sys.argv", ["git-roster", *argv])
    cli.main()


def write_inventory(path: Path, *entries: dict) -> Path:
    path.write_text(json.dumps(list(entries)))
    return path


def test_no_command_prints_help(
    config: Config, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that running without a command shows the grouped help.

    Args:
        config (Config): The mocked configuration.
        mocker (MagicMock): Pytest fixture for mocking.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing stdout.
    """
    run_cli(mocker)

    out = capsys.readouterr().out
    assert "Inventory:" in out
    assert "Scheduling:" in out
    assert "restore" in out


def test_scan_writes_inventory(
    config: Config,
    mocker: MagicMock,
    tmp_path: Path,
    make_repo: RepoFactory,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies that `scan -o` lists the repositories and writes the file."""
    make_repo(tmp_path / "src" / "api", url="https://example.com/api.git")
    output = tmp_path / "repos.csv"

    run_cli(mocker, "scan", str(tmp_path / "src"), "-o", str(output))

    assert "SUCCESS" in capsys.readouterr().out
    lines = output.read_text().splitlines()
    assert len(lines) == 2
    assert "https://example.com/api.git" in lines[1]


def test_scan_missing_root_fails(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that an unusable scan root is a fatal error."""
    with pytest.raises(SystemExit) as exc:
        run_cli(mocker, "scan", str(tmp_path / "missing"))

    assert exc.value.code == 1
    assert "ERROR" in capsys.readouterr().out


def test_restore_clones_records(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that `restore` clones every entry into the destination."""
    inventory = write_inventory(
        tmp_path / "repos.json",
        {"relative_path": "api", "remote_url": "https://example.com/api.git"},
    )
    mock_clone = mocker.patch("git_roster.restore.git_wrapper.clone", return_value=0)

    run_cli(mocker, "restore", str(inventory), "-d", str(tmp_path / "dest"))

    mock_clone.assert_called_once()
    assert mock_clone.call_args[0][1] == (tmp_path / "dest" / "api").resolve()
    assert "1 cloned" in capsys.readouterr().out


def test_restore_failed_clone_exits(
    config: Config, mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that a failed clone makes the command exit with status 1."""
    inventory = write_inventory(
        tmp_path / "repos.json",
        {"relative_path": "api", "remote_url": "https://example.com/api.git"},
    )
    mocker.patch("git_roster.restore.git_wrapper.clone", return_value=128)

    with pytest.raises(SystemExit) as exc:
        run_cli(mocker, "restore", str(inventory), "-d", str(tmp_path / "dest"))

    assert exc.value.code == 1


def test_restore_dry_run_clones_nothing(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that `restore --dry-run` only reports."""
    inventory = write_inventory(
        tmp_path / "repos.json",
        {"relative_path": "api", "remote_url": "https://example.com/api.git"},
    )
    mock_clone = mocker.patch("git_roster.restore.git_wrapper.clone")

    run_cli(mocker, "restore", str(inventory), "-d", str(tmp_path), "--dry-run")

    mock_clone.assert_not_called()
    assert "DRY RUN" in capsys.readouterr().out


def test_restore_unreadable_inventory(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that a malformed inventory stops the command."""
    inventory = tmp_path / "repos.json"
    inventory.write_text("{broken")

    with pytest.raises(SystemExit):
        run_cli(mocker, "restore", str(inventory))

    assert "ERROR" in capsys.readouterr().out


def test_sync_requires_directory(
    config: Config, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that sync needs a directory from the flags or the config."""
    with pytest.raises(SystemExit):
        run_cli(mocker, "sync", "-l", "repos.json")

    assert "No directory given" in capsys.readouterr().out


def test_sync_yes_creates_directory(
    config: Config, mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that `--yes` creates the directory without prompting."""
    mock_ask = mocker.patch("git_roster.cli.Confirm.ask")
    directory, inventory = tmp_path / "src", tmp_path / "repos.json"

    run_cli(mocker, "sync", "-d", str(directory), "-l", str(inventory), "--yes")

    mock_ask.assert_not_called()
    assert directory.is_dir()
    assert json.loads(inventory.read_text()) == []


def test_sync_declined_directory(
    config: Config, mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that declining the prompt leaves the directory uncreated."""
    mock_ask = mocker.patch("git_roster.cli.Confirm.ask", return_value=False)
    directory = tmp_path / "src"

    run_cli(
        mocker, "sync", "-d", str(directory), "-l", str(tmp_path / "repos.json")
    )

    mock_ask.assert_called_once()
    assert not directory.exists()


def test_sync_uses_configured_targets(
    config: Config,
    mocker: MagicMock,
    tmp_path: Path,
    make_repo: RepoFactory,
    capsys: pytest.CaptureFixture,
) -> None:
    """Verifies that the config supplies the targets and the report is printed."""
    config.sync.directory = tmp_path / "src"
    config.sync.list_path = tmp_path / "repos.json"
    make_repo(tmp_path / "src" / "api", url="https://example.com/api.git")
    write_inventory(config.sync.list_path, {"relative_path": "notes"})

    run_cli(mocker, "sync")

    out = capsys.readouterr().out
    assert "No remote URL:" in out
    assert "notes" in out
    paths = [e["relative_path"] for e in json.loads(config.sync.list_path.read_text())]
    assert paths == ["api", "notes"]


def test_sync_publishes_when_written(
    config: Config, mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that `--publish` uploads a freshly written inventory."""
    (tmp_path / "src").mkdir()
    inventory = tmp_path / "repos.json"
    mock_publish = mocker.patch(
        "git_roster.cli.gist.publish_configured",
        return_value=PublishedGist("g1", "https://gist.github.com/g1"),
    )

    run_cli(
        mocker, "sync", "-d", str(tmp_path / "src"), "-l", str(inventory), "--publish"
    )

    mock_publish.assert_called_once_with(
        inventory, None, False, config.gist.description
    )


def test_publish_missing_file(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that publishing a missing file fails before any upload."""
    mock_publish = mocker.patch("git_roster.cli.gist.publish_configured")

    with pytest.raises(SystemExit):
        run_cli(mocker, "publish", str(tmp_path / "missing.json"))

    mock_publish.assert_not_called()
    assert "does not exist" in capsys.readouterr().out


def test_publish_uses_flags_over_config(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that command-line gist settings take precedence."""
    config.gist.gist_id = "configured"
    inventory = write_inventory(tmp_path / "repos.json")
    mock_publish = mocker.patch(
        "git_roster.cli.gist.publish_configured",
        return_value=PublishedGist("g2", "https://gist.github.com/g2"),
    )

    run_cli(mocker, "publish", str(inventory), "--gist-id", "g2", "--public")

    mock_publish.assert_called_once_with(
        inventory, "g2", True, config.gist.description
    )
    assert "SUCCESS" in capsys.readouterr().out


def test_publish_error_fails(
    config: Config, mocker: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that upload errors are fatal."""
    inventory = write_inventory(tmp_path / "repos.json")
    mocker.patch(
        "git_roster.cli.gist.publish_configured",
        side_effect=GistError("GITHUB_TOKEN is not set."),
    )

    with pytest.raises(SystemExit):
        run_cli(mocker, "publish", str(inventory))

    assert "GITHUB_TOKEN" in capsys.readouterr().out


@pytest.mark.parametrize(
    ("argv", "interval", "dry_run"),
    [
        (["schedule", "install"], 3600, False),
        (["schedule", "install", "--interval", "30m"], 1800, False),
        (["schedule", "install", "-n"], 3600, True),
    ],
)
def test_schedule_install(
    config: Config,
    mocker: MagicMock,
    argv: list[str],
    interval: int,
    dry_run: bool,
) -> None:
    """Verifies the interval passed to the service installer."""
    config.sync.interval = 3600
    mock_install = mocker.patch("git_roster.cli.service.install")

    run_cli(mocker, *argv)

    mock_install.assert_called_once_with(interval=interval, dry_run=dry_run)


def test_schedule_invalid_interval(
    config: Config, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that an unparsable interval is rejected."""
    mock_install = mocker.patch("git_roster.cli.service.install")

    with pytest.raises(SystemExit):
        run_cli(mocker, "schedule", "install", "--interval", "soon")

    mock_install.assert_not_called()
    assert "Invalid time format" in capsys.readouterr().out


def test_schedule_uninstall(config: Config, mocker: MagicMock) -> None:
    """Verifies that `schedule uninstall` removes the service."""
    mock_uninstall = mocker.patch("git_roster.cli.service.uninstall")

    run_cli(mocker, "schedule", "uninstall")

    mock_uninstall.assert_called_once()


def test_config_list(
    config: Config, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies that `config --list` prints the option reference."""
    run_cli(mocker, "config", "--list")

    out = capsys.readouterr().out
    assert "Configuration Schema" in out
    assert "GITHUB_TOKEN" in out


def test_open_config_creates_template(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that a missing config file is created and opened."""
    config_file = tmp_path / "git-roster" / "config.toml"
    mocker.patch("git_roster.cli.CONFIG_FILE", config_file)
    mocker.patch.dict("os.environ", {"EDITOR": "vim"})
    mock_run = mocker.patch("subprocess.run")

    cli.open_config()

    assert config_file.read_text().startswith("# Git Roster Configuration")
    mock_run.assert_called_once_with(["vim", str(config_file)])


def test_policy_flags_default_to_config() -> None:
    """Verifies that unset policy flags defer to the config file."""
    args = cli.build_parser().parse_args(["restore", "repos.json"])

    assert args.force is None
    assert args.skip_existing is None
    assert args.dry_run is False
