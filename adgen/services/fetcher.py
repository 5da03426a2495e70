"""
Background image download.

One attempt per call with a bounded timeout. Whether to retry is the caller's
decision; the orchestrator does not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from urllib.parse import urlparse

import requests

from adgen.services.errors import FetchError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(slots=True)
class FetchedImage:
    data: bytes
    filename: str
    content_type: str = "image/png"


def filename_for_url(url: str, now: datetime | None = None) -> str:
    """
    Best-effort filename from the last URL path segment plus a timestamp.

    The timestamp keeps repeated downloads of the same URL apart.
    """
    stem = PurePosixPath(urlparse(url).path).stem or "image"
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S%f")
    return f"{stem}_{stamp}.png"


class BackgroundFetcher:
    """Downloads remote images into memory using `requests`."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, url: str, filename: str | None = None) -> FetchedImage:
        if not url:
            raise FetchError(url or "", FetchError.NETWORK, detail="empty URL")

        logger.info("Downloading image from %s", url)
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            logger.error("Timed out after %.0fs downloading %s", self.timeout, url)
            raise FetchError(url, FetchError.TIMEOUT, detail=str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Network error downloading %s: %s", url, exc)
            raise FetchError(url, FetchError.NETWORK, detail=str(exc)) from exc

        if not 200 <= response.status_code < 300:
            logger.error("Failed to download image from %s: HTTP %s", url, response.status_code)
            raise FetchError(url, FetchError.HTTP_STATUS, status_code=response.status_code)

        content_type = response.headers.get("Content-Type", "image/png").split(";")[0].strip()
        image = FetchedImage(
            data=response.content,
            filename=filename or filename_for_url(url),
            content_type=content_type or "image/png",
        )
        logger.info("Downloaded %s (%d bytes)", image.filename, len(image.data))
        return image
