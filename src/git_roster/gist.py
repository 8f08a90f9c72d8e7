"""Publishing inventory files to GitHub gists."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import httpx

from .constants import APP_NAME, GIST_API_URL, GIST_TOKEN_ENV

logger = logging.getLogger(APP_NAME)

TIMEOUT_SECONDS = 10


class GistError(RuntimeError):
    """Raised when an inventory cannot be published."""


@dataclass(frozen=True)
class PublishedGist:
    """The id and web URL of a created or updated gist."""

    gist_id: str
    url: str


def get_token() -> str:
    """Reads the API token from the environment.

    Raises:
        GistError: If no token is set.
    """
    token = os.environ.get(GIST_TOKEN_ENV, "").strip()
    if not token:
        raise GistError(f"Set {GIST_TOKEN_ENV} to publish inventories.")
    return token


def publish(
    path: Path,
    token: str,
    gist_id: str | None = None,
    public: bool = False,
    description: str = "git-roster inventory",
    client: httpx.Client | None = None,
) -> PublishedGist:
    """Uploads an inventory file, updating a gist or creating a new one.

    Args:
        path (Path): The inventory file. Its name becomes the gist file name.
        token (str): A GitHub token with the `gist` scope.
        gist_id (str | None, optional): The gist to update. A new gist is
                                        created when omitted.
        public (bool, optional): Visibility of a newly created gist.
        description (str, optional): The gist description.
        client (httpx.Client | None, optional): The HTTP client to use.

    Returns:
        PublishedGist: The id and web URL of the gist.

    Raises:
        GistError: If the file cannot be read or the API call fails.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise GistError(f"Could not read {path}: {e}") from e

    payload: dict = {
        "description": description,
        "files": {path.name: {"content": content}},
    }
    headers = {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": "2022-11-28",
    }

    owns_client = client is None
    http = client or httpx.Client(timeout=TIMEOUT_SECONDS)
    try:
        if gist_id:
            response = http.patch(
                f"{GIST_API_URL}/{gist_id}", json=payload, headers=headers
            )
        else:
            payload["public"] = public
            response = http.post(GIST_API_URL, json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
    except httpx.HTTPStatusError as e:
        raise GistError(
            f"GitHub rejected the upload ({e.response.status_code}): "
            f"{e.response.text[:200]}"
        ) from e
    except httpx.HTTPError as e:
        raise GistError(f"Could not reach GitHub: {e}") from e
    except ValueError as e:
        raise GistError(f"Unexpected response from GitHub: {e}") from e
    finally:
        if owns_client:
            http.close()

    published = PublishedGist(
        gist_id=str(data.get("id") or gist_id or ""),
        url=str(data.get("html_url") or ""),
    )
    logger.info(f"PUBLISHED {path.name} to gist {published.gist_id}.")
    return published


def publish_configured(
    path: Path, gist_id: str | None, public: bool, description: str
) -> PublishedGist:
    """Publishes using the token from the environment."""
    published = publish(
        path, get_token(), gist_id=gist_id, public=public, description=description
    )
    if not gist_id:
        logger.warning(
            f"Created gist {published.gist_id}. Set gist.gist_id in the config "
            "to keep updating it."
        )
    return published
