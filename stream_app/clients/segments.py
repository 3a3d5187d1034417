"""Bounded-concurrency segment downloads."""
import asyncio
import logging
from dataclasses import dataclass
from operator import attrgetter
from pathlib import Path
from typing import List, Optional

import httpx

from models.manifest import Segment
from utils.cancellation import CancellationToken
from utils.exceptions import FetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Per-segment retry. One attempt means failures are final."""

    attempts: int = 1
    backoff_seconds: float = 0.5

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))


class SegmentFetcher:
    """Downloads the segments of one manifest into a workspace directory.

    At most ``max_concurrent`` requests are in flight at any instant. The
    returned list is always ordered by segment index, however the downloads
    happened to complete. A single failed segment fails the whole call.
    """

    def __init__(self, client: httpx.AsyncClient, max_concurrent: int = 5,
                 retry: Optional[RetryPolicy] = None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._client = client
        self._max_concurrent = max_concurrent
        self._retry = retry or RetryPolicy()

    async def fetch_all(self, segments: List[Segment], directory: Path,
                        cancel_token: Optional[CancellationToken] = None) -> List[Segment]:
        if not segments:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrent)
        tasks = [
            asyncio.create_task(self._fetch_bounded(semaphore, segment, directory, cancel_token))
            for segment in segments
        ]

        downloaded: List[Segment] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                downloaded.append(await next_done)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        downloaded.sort(key=attrgetter("index"))
        logger.info(f"Downloaded {len(downloaded)} segments for manifest "
                    f"{segments[0].manifest_index} ({sum(s.size for s in downloaded)} bytes)")
        return downloaded

    async def _fetch_bounded(self, semaphore: asyncio.Semaphore, segment: Segment,
                             directory: Path, cancel_token: Optional[CancellationToken]) -> Segment:
        async with semaphore:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            return await self._fetch_with_retry(segment, directory)

    async def _fetch_with_retry(self, segment: Segment, directory: Path) -> Segment:
        attempt = 1
        while True:
            try:
                return await self._fetch_one(segment, directory)
            except FetchError:
                if attempt >= self._retry.attempts:
                    raise
                delay = self._retry.delay(attempt)
                logger.warning(f"Retrying segment {segment.index} of manifest "
                               f"{segment.manifest_index} in {delay:.1f}s "
                               f"(attempt {attempt + 1}/{self._retry.attempts})")
                await asyncio.sleep(delay)
                attempt += 1

    async def _fetch_one(self, segment: Segment, directory: Path) -> Segment:
        logger.debug(f"Downloading segment {segment.index} from manifest "
                     f"{segment.manifest_index}: {segment.resolved_uri}")
        try:
            response = await self._client.get(segment.resolved_uri, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"Segment {segment.index} of manifest {segment.manifest_index} failed with "
                f"HTTP {exc.response.status_code}: {segment.resolved_uri}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(
                f"Error downloading segment {segment.index} of manifest "
                f"{segment.manifest_index}: {exc}"
            ) from exc

        body = response.content
        path = directory / segment.filename
        try:
            await asyncio.to_thread(path.write_bytes, body)
        except OSError as exc:
            raise FetchError(f"Could not write segment file {path}: {exc}") from exc

        segment.path = path
        segment.size = len(body)
        return segment
