"""De Lijn GTFS-RT download with retry and backoff."""

from __future__ import annotations

import asyncio
import hashlib
import inspect

import httpx

from delijn_rt.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0
SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"

# Client errors other than these will not change on a retry.
RETRYABLE_CLIENT_STATUSES = frozenset({408, 425, 429})


class FeedFetchError(Exception):
    """Raised when the feed cannot be downloaded.

    ``status_code`` and ``body`` describe the last upstream HTTP response
    when the final failure was a non-2xx status; both are empty for network
    failures and empty bodies.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in RETRYABLE_CLIENT_STATUSES
    return True


class GtfsRtFetcher:
    """Fetches the De Lijn GTFS-RT protobuf feed."""

    def __init__(
        self,
        api_key: str,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        self.api_key = api_key
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Cache-Control": "no-cache",
            SUBSCRIPTION_KEY_HEADER: self.api_key,
        }

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        response = await client.get(url, headers=self.headers)
        raise_result = response.raise_for_status()
        if inspect.isawaitable(raise_result):
            await raise_result
        if not response.content:
            msg = "Empty response body"
            raise FeedFetchError(msg)
        return response.content

    async def fetch(self, url: str, poll_id: str) -> tuple[bytes, str]:
        """Download the feed, retrying transient failures with exponential backoff.

        Args:
            url: Feed URL.
            poll_id: Correlation ID for this request.

        Returns:
            Tuple of (protobuf_bytes, sha256_hex_digest).

        Raises:
            FeedFetchError: When retries are exhausted or the upstream answers
                with a client error that retrying cannot fix.
        """
        last_error: Exception | None = None
        attempts = 0

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_sec),
            follow_redirects=True,
        ) as client:
            while attempts < self.max_retries:
                attempts += 1
                logger.info(
                    "Fetching GTFS-RT feed",
                    poll_id=poll_id,
                    attempt=attempts,
                    max_retries=self.max_retries,
                )
                try:
                    data = await self._download(client, url)
                except (httpx.HTTPStatusError, httpx.RequestError, FeedFetchError) as exc:
                    last_error = exc
                    if not is_retryable(exc) or attempts >= self.max_retries:
                        break
                    delay = self.backoff_base**attempts
                    logger.warning(
                        "GTFS-RT fetch failed, retrying",
                        poll_id=poll_id,
                        attempt=attempts,
                        delay_sec=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                    continue

                feed_hash = hashlib.sha256(data).hexdigest()
                logger.info(
                    "GTFS-RT feed downloaded",
                    poll_id=poll_id,
                    size_bytes=len(data),
                    feed_hash=feed_hash[:12],
                )
                return data, feed_hash

        status_code: int | None = None
        body = ""
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
            body = last_error.response.text

        msg = f"Failed to fetch GTFS-RT feed after {attempts} attempts"
        logger.error(msg, poll_id=poll_id, status_code=status_code, error=str(last_error))
        raise FeedFetchError(msg, status_code=status_code, body=body) from last_error
