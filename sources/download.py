"""Download-and-cache step for source dumps."""

import asyncio
import logging
import random
import time
from pathlib import Path
from typing import Optional, Union

import aiohttp

from pipelines.errors import DownloadError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class Downloader:
    """Fetches a URL into the input directory unless a cached copy exists."""

    def __init__(self,
                 input_path: Union[str, Path],
                 request_timeout: int = 3600,
                 max_retries: int = 3,
                 retry_delay: float = 1.0,
                 max_retry_delay: float = 60.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize downloader.

        Args:
            input_path: Directory downloaded files are written to
            request_timeout: Total timeout per attempt in seconds
            max_retries: Maximum number of retry attempts
            retry_delay: Base delay between retries (seconds)
            max_retry_delay: Maximum delay between retries (seconds)
            session: Optional externally managed client session
        """
        self.input_path = Path(input_path)
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.session = session

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        base_delay = self.retry_delay * (2 ** attempt)
        jitter = random.uniform(0.1, 0.3) * base_delay
        return min(base_delay + jitter, self.max_retry_delay)

    async def download(self, url: str, file_name: str, force: bool = False) -> Path:
        """Make ``file_name`` available locally and return its path.

        Args:
            url: Source URL
            file_name: Name of the file inside the input directory
            force: Download even when a cached copy exists

        Raises:
            DownloadError: If every attempt failed
        """
        destination = self.input_path / file_name

        if destination.exists() and not force:
            logger.info(f"Using cached {destination}")
            return destination

        self.input_path.mkdir(parents=True, exist_ok=True)

        owns_session = self.session is None
        session = self.session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.request_timeout)
        )

        try:
            return await self._download_with_retries(session, url, destination)
        finally:
            if owns_session:
                await session.close()

    async def _download_with_retries(self, session: aiohttp.ClientSession,
                                     url: str, destination: Path) -> Path:
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt in range(self.max_retries + 1):
            try:
                logger.info(f"Downloading {url} (attempt {attempt + 1}/{self.max_retries + 1})")
                return await self._fetch(session, url, destination)

            except DownloadError as e:
                last_error, last_status = str(e), e.status_code
                if e.status_code not in RETRYABLE_STATUS_CODES:
                    raise

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_error, last_status = str(e) or type(e).__name__, None

            if attempt < self.max_retries:
                delay = self._calculate_retry_delay(attempt)
                logger.warning(f"Download of {url} failed: {last_error}, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

        raise DownloadError(
            f"Failed to download {url} after {self.max_retries + 1} attempts: {last_error}",
            url=url,
            status_code=last_status
        )

    async def _fetch(self, session: aiohttp.ClientSession, url: str, destination: Path) -> Path:
        partial = destination.with_name(destination.name + '.part')
        start_time = time.time()
        size = 0

        try:
            async with session.get(url, allow_redirects=True) as response:
                if response.status != 200:
                    raise DownloadError(
                        f"HTTP {response.status} for {url}",
                        url=url,
                        status_code=response.status
                    )

                with open(partial, 'wb') as f:
                    async for chunk in response.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                        size += len(chunk)

            partial.replace(destination)
        finally:
            if partial.exists():
                partial.unlink()

        logger.info(f"Downloaded {url} to {destination} ({size} bytes in {time.time() - start_time:.1f}s)")
        return destination


async def download(url: str, file_name: str, force: bool = False,
                   input_path: Union[str, Path] = "input", **kwargs) -> Path:
    """Convenience function to download one file.

    Args:
        url: Source URL
        file_name: Name of the file inside ``input_path``
        force: Download even when a cached copy exists
        input_path: Directory downloaded files are written to
    """
    return await Downloader(input_path, **kwargs).download(url, file_name, force)
