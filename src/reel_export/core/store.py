"""Upload of finished reels to the remote store."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path

import httpx

from ..config import get_store_config
from ..errors import UpstreamStoreError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^\w\- ]+", re.UNICODE)


def sanitize_remote_name(title: str | None, extension: str = ".mp4") -> str:
    """
    Derive a safe remote file name from a free-form title.

    Keeps letters, digits, underscores, hyphens and spaces, collapses
    whitespace to single hyphens and caps the length.
    """
    cleaned = _UNSAFE_NAME_CHARS.sub("", title or "").strip()
    cleaned = re.sub(r"[\s\-]+", "-", cleaned)[:100].strip("-")
    if not cleaned:
        cleaned = f"reel-{datetime.now().strftime('%Y%m%d-%H%M%S')}"
    return f"{cleaned}{extension}"


async def upload_artifact(
    artifact: Path,
    remote_name: str,
    client: httpx.AsyncClient | None = None,
) -> str:
    """
    Upload a file to the configured store.

    Sends a multipart body with a JSON ``metadata`` part (name, parent
    folder) and the media part, authenticated with a bearer token.

    Returns:
        The remote file id

    Raises:
        UpstreamStoreError: store not configured, unreachable, or rejected
            the upload; the upstream payload is kept in ``details``
    """
    config = get_store_config()
    if not config.get("token"):
        raise UpstreamStoreError("Remote store is not configured (missing token)")

    metadata: dict[str, object] = {"name": remote_name}
    if config.get("folder_id"):
        metadata["parents"] = [config["folder_id"]]

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=config["timeout_seconds"])

    try:
        with open(artifact, "rb") as media:
            files = {
                "metadata": (None, json.dumps(metadata), "application/json; charset=UTF-8"),
                "file": (remote_name, media, "video/mp4"),
            }
            response = await client.post(
                config["upload_url"],
                headers={"Authorization": f"Bearer {config['token']}"},
                files=files,
            )
    except httpx.HTTPError as e:
        raise UpstreamStoreError(f"Remote store request failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise UpstreamStoreError(
            f"Remote store rejected the upload (HTTP {response.status_code})",
            response.text,
        )

    try:
        payload = response.json()
    except ValueError:
        payload = None
    file_id = payload.get("id") if isinstance(payload, dict) else None
    if not file_id:
        raise UpstreamStoreError("Remote store response did not include a file id", response.text)

    logger.info(f"Uploaded {artifact.name} as {remote_name!r} (id {file_id})")
    return file_id
