"""Async client for the partner inventory feed."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import aiohttp

from carzo_feed.constants import DEFAULT_FEED_HOST, FEED_ARCHIVE_EXTENSION, FEED_URL_TEMPLATE
from carzo_feed.errors import ConfigurationError, NetworkError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
# Single attempt with no deadline; a hung download blocks the run.
_NO_TIMEOUT = aiohttp.ClientTimeout(total=None)


class FeedClient:
    """Downloads the publisher's compressed inventory export."""

    def __init__(
        self,
        username: str,
        password: str,
        publisher_id: str,
        *,
        host: str = DEFAULT_FEED_HOST,
        extension: str = FEED_ARCHIVE_EXTENSION,
    ) -> None:
        self.username = username.strip()
        self.password = password
        self.publisher_id = publisher_id.strip()
        self.host = host
        self.extension = extension
        self.session: aiohttp.ClientSession | None = None

    @property
    def feed_url(self) -> str:
        return FEED_URL_TEMPLATE.format(
            host=self.host,
            publisher_id=self.publisher_id,
            extension=self.extension,
        )

    async def __aenter__(self) -> FeedClient:
        if not self.username or not self.password or not self.publisher_id:
            raise ConfigurationError(
                "Feed username, password and publisher id are required.",
            )
        self.session = aiohttp.ClientSession(
            auth=aiohttp.BasicAuth(self.username, self.password),
            timeout=_NO_TIMEOUT,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.session:
            await self.session.close()

    async def download(self, dest_dir: str | Path) -> Path:
        """Stream the archive into ``dest_dir`` and return the local path.

        The caller owns the returned file.  On any failure the partial file is
        removed before :class:`NetworkError` propagates.
        """
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        target_dir = Path(dest_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        archive_path = target_dir / f"feed-{int(time.time() * 1000)}.{self.extension}"

        logger.info("Downloading feed for publisher %s", self.publisher_id)
        try:
            async with self.session.get(self.feed_url) as resp:
                if resp.status != 200:
                    raise NetworkError(
                        f"HTTP {resp.status}: {resp.reason or 'feed request failed'}",
                        status=resp.status,
                        details={"url": self.feed_url},
                    )
                written = 0
                with open(archive_path, "wb") as fh:
                    async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
        except NetworkError:
            archive_path.unlink(missing_ok=True)
            raise
        except (aiohttp.ClientError, OSError) as exc:
            archive_path.unlink(missing_ok=True)
            logger.error("Feed download failed: %s", exc)
            raise NetworkError(
                f"Feed download failed: {exc}",
                details={"url": self.feed_url},
            ) from exc

        logger.info("Downloaded %d bytes to %s", written, archive_path)
        return archive_path
