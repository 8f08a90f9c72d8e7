import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, REPO_MARKER

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """Raised when a git command that must succeed returns a non-zero exit code."""


def batch_env() -> dict[str, str]:
    """Builds an environment in which git never waits for interactive input.

    Returns:
        dict[str, str]: A copy of the current environment with terminal and
                        SSH password prompts disabled.
    """
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
    return env


def clone(
    url: str, target: Path, executable: str = "git", quiet: bool = True
) -> int:
    """Clones a repository, including its submodules.

    Args:
        url (str): The remote URL to clone.
        target (Path): The directory to clone into. Must not exist yet.
        executable (str, optional): The git executable. Defaults to "git".
        quiet (bool, optional): Whether to discard git's output and disable
                                credential prompts. Defaults to True.

    Returns:
        int: The exit code of `git clone`.

    Raises:
        OSError: If the git executable cannot be started.
    """
    cmd = [executable, "clone", "--recurse-submodules", "--", url, str(target)]
    logger.debug(f"Running: {' '.join(cmd)}")
    res = subprocess.run(
        cmd,
        stdout=subprocess.DEVNULL if quiet else None,
        stderr=subprocess.DEVNULL if quiet else None,
        env=batch_env() if quiet else None,
    )
    return res.returncode


def ls_remote(url: str, executable: str = "git", timeout: float = 10) -> int:
    """Lists the branch heads of a remote, discarding the output.

    `subprocess.run` kills the child when the timeout expires.

    Args:
        url (str): The remote URL to query.
        executable (str, optional): The git executable. Defaults to "git".
        timeout (float, optional): Wall-clock limit in seconds. Defaults to 10.

    Returns:
        int: The exit code of `git ls-remote`.

    Raises:
        subprocess.TimeoutExpired: If the remote did not answer in time.
        OSError: If the git executable cannot be started.
    """
    res = subprocess.run(
        [executable, "ls-remote", "--heads", url],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        timeout=timeout,
        env=batch_env(),
    )
    return res.returncode


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Attributes:
        path (Path): The file system path to the repository root.
        executable (str): The git executable used for every command.
    """

    def __init__(self, path: Path, executable: str = "git"):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            executable (str, optional): The git executable. Defaults to "git".

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.executable = executable
        if not (self.path / REPO_MARKER).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code or
                      cannot be started.
        """
        try:
            res = subprocess.run(
                [self.executable, *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise GitError(f"Git error: {e.stderr or e}") from e
        except OSError as e:
            raise GitError(f"Could not run {self.executable}: {e}") from e

    def set_config(self, key: str, value: str) -> None:
        """Writes a repository-local configuration value.

        Args:
            key (str): The configuration key (e.g., 'user.name').
            value (str): The value to store.
        """
        self._run(["config", "--local", key, value])

    def set_identity(self, name: str | None, email: str | None) -> None:
        """Applies a repository-local author identity.

        Args:
            name (str | None): The `user.name` to set, skipped when empty.
            email (str | None): The `user.email` to set, skipped when empty.
        """
        if name:
            self.set_config("user.name", name)
        if email:
            self.set_config("user.email", email)
