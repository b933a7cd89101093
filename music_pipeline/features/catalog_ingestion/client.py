"""
Jamendo catalog API client.
Paginated read access to /tracks with retry, exponential backoff and jitter.
Low-level HTTP client: returns raw result dicts, normalization happens elsewhere.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any

import httpx

from music_pipeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

JAMENDO_API_BASE_URL = "https://api.jamendo.com/v3.0"
TRACKS_PATH = "/tracks"
AUDIO_FORMAT = "mp31"
REQUEST_TIMEOUT = 30  # seconds


class CatalogClientError(Exception):
    """Raised when a catalog page cannot be fetched."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        offset: int | None = None,
        tag: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.offset = offset
        self.tag = tag


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 4
    base_delay: float = 0.8
    max_delay: float = 10.0
    max_jitter: float = 0.25

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 1-based attempt."""
        backoff = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return backoff + jitter


class JamendoCatalogClient:
    """
    Read-only client for the Jamendo tracks endpoint.

    Every non-2xx status, transport error, unparseable body or Jamendo
    "failed" envelope counts as a failed attempt. After the last attempt
    the failure is raised as CatalogClientError.
    """

    def __init__(
        self,
        client_id: str,
        base_url: str = JAMENDO_API_BASE_URL,
        retry_policy: RetryPolicy | None = None,
        timeout: float = REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not client_id or not client_id.strip():
            raise ValueError("Jamendo client_id is required")

        self._client_id = client_id.strip()
        self._tracks_url = base_url.rstrip("/") + TRACKS_PATH
        self._retry_policy = retry_policy or RetryPolicy()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _build_params(self, page_size: int, offset: int, tag: str | None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "client_id": self._client_id,
            "format": "json",
            "limit": page_size,
            "offset": offset,
            "audioformat": AUDIO_FORMAT,
        }
        if tag:
            params["tags"] = tag
        return params

    async def fetch_tracks(
        self, page_size: int, offset: int = 0, tag: str | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch one page of raw track records.

        Returns:
            list: The page's result records (possibly empty)

        Raises:
            CatalogClientError: once every attempt has failed
        """
        params = self._build_params(page_size, offset, tag)
        attempts = self._retry_policy.max_attempts

        for attempt in range(1, attempts + 1):
            try:
                return await self._fetch_once(params, offset, tag)
            except CatalogClientError as e:
                if attempt >= attempts:
                    logger.warning(
                        "Catalog fetch failed, giving up",
                        attempt=attempt,
                        max_attempts=attempts,
                        offset=offset,
                        tag=tag,
                        status_code=e.status_code,
                        error=str(e),
                    )
                    raise
                delay = self._retry_policy.delay_for(attempt)
                logger.warning(
                    "Catalog fetch failed, retrying",
                    attempt=attempt,
                    max_attempts=attempts,
                    offset=offset,
                    tag=tag,
                    status_code=e.status_code,
                    backoff_seconds=round(delay, 3),
                    error=str(e),
                )
                await asyncio.sleep(delay)

        raise RuntimeError("Catalog retry loop exhausted")

    async def _fetch_once(
        self, params: dict[str, Any], offset: int, tag: str | None
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(self._tracks_url, params=params)
        except httpx.RequestError as e:
            raise CatalogClientError(
                f"Jamendo request error: {e}", offset=offset, tag=tag
            ) from e

        return self._handle_api_response(response, offset, tag)

    def _handle_api_response(
        self, response: httpx.Response, offset: int, tag: str | None
    ) -> list[dict[str, Any]]:
        logger.debug(
            "Jamendo tracks response",
            status_code=response.status_code,
            offset=offset,
            tag=tag,
        )

        if not response.is_success:
            raise CatalogClientError(
                f"Jamendo fetch failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
                offset=offset,
                tag=tag,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise CatalogClientError(
                f"Invalid response format: {e}",
                status_code=response.status_code,
                offset=offset,
                tag=tag,
            ) from e

        if not isinstance(payload, dict):
            raise CatalogClientError(
                "Invalid response format: expected an object",
                status_code=response.status_code,
                offset=offset,
                tag=tag,
            )

        # Jamendo reports API errors with HTTP 200 and a "failed" envelope
        headers = payload.get("headers") or {}
        if isinstance(headers, dict) and headers.get("status") == "failed":
            raise CatalogClientError(
                f"Jamendo API error {headers.get('code')}: {headers.get('error_message', '')}",
                status_code=response.status_code,
                offset=offset,
                tag=tag,
            )

        results = payload.get("results")
        if not isinstance(results, list):
            return []
        return results
