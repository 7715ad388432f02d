"""Async HTTP client wrapper for Recall.ai REST API.

Provides RecallClient with retry logic (tenacity, 3 attempts, exponential
backoff 1-10s). All methods are async and log with structlog for
observability.

Only the read side of the API is covered: bot detail, the bot transcript,
transcript artifacts listed per recording, and raw artifact download. Bot
creation and live control happen outside this service.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

_recall_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)),
)


class RecallClient:
    """Async client for Recall.ai REST API.

    Uses httpx.AsyncClient with configurable timeouts per operation type.

    Args:
        api_key: Recall.ai API token.
        region: Recall.ai region (default: us-west-2).
    """

    TIMEOUT_READ = 10.0      # get/status operations
    TIMEOUT_DOWNLOAD = 30.0  # artifact downloads

    def __init__(self, api_key: str, region: str = "us-west-2") -> None:
        self._api_key = api_key
        self._base_url = f"https://{region}.recall.ai/api/v1"
        self._headers = {
            "Authorization": f"Token {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self._api_key)

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=timeout,
        )

    @_recall_retry
    async def get_bot(self, bot_id: str) -> dict:
        """Get full bot details.

        GET /bot/{bot_id}/ returns complete bot state including
        status_changes and recordings with their media shortcuts.

        Args:
            bot_id: Recall.ai bot identifier.

        Returns:
            Full bot detail response.
        """
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/bot/{bot_id}/",
            )
            response.raise_for_status()
            return response.json()

    @_recall_retry
    async def get_transcript(self, bot_id: str) -> list[Any]:
        """Get full transcript after meeting ends.

        GET /bot/{bot_id}/transcript/ returns per-speaker transcript entries,
        either as a bare list or as a paginated ``{"results": [...]}`` body.

        Args:
            bot_id: Recall.ai bot identifier.

        Returns:
            List of raw transcript entries.
        """
        async with self._client(self.TIMEOUT_READ) as client:
            response = await client.get(
                f"{self._base_url}/bot/{bot_id}/transcript/",
            )
            response.raise_for_status()
            entries = _unwrap_results(response.json())
            logger.info(
                "recall.transcript_retrieved",
                bot_id=bot_id,
                entry_count=len(entries),
            )
            return entries

    @_recall_retry
    async def list_transcripts(self, recording_id: str) -> list[dict]:
        """List transcript artifacts produced for a recording.

        GET /transcript/?recording={recording_id}

        Args:
            recording_id: Recall.ai recording identifier.

        Follows the paginated ``next`` link until it is null.

        Returns:
            List of transcript artifact dicts (each may carry a download URL).
        """
        artifacts: list[Any] = []
        url: str | None = f"{self._base_url}/transcript/"
        params: dict | None = {"recording": recording_id}
        pages = 0
        async with self._client(self.TIMEOUT_READ) as client:
            while url:
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
                artifacts.extend(_unwrap_results(data))
                pages += 1
                # The next link already carries the query string
                url = data.get("next") if isinstance(data, dict) else None
                params = None

        logger.debug(
            "recall.transcripts_listed",
            recording_id=recording_id,
            artifact_count=len(artifacts),
            pages=pages,
        )
        return [a for a in artifacts if isinstance(a, dict)]

    @_recall_retry
    async def download(self, url: str) -> Any:
        """Download a JSON artifact from a pre-signed URL.

        Pre-signed URLs carry their own credentials, so the API token header
        is not sent.

        Args:
            url: Artifact download URL.

        Returns:
            Parsed JSON body.
        """
        async with httpx.AsyncClient(timeout=self.TIMEOUT_DOWNLOAD) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()


def _unwrap_results(data: Any) -> list[Any]:
    """Accept either a bare list or a paginated ``{"results": [...]}`` body."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return data["results"]
    return []
