"""Base abstraction for short-video search sources."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from models.video import CandidateVideo, SearchFilters
from services.errors import UpstreamUnavailableError
from services.video_sources.payloads import decode_search_payload
from utils.retry import NetworkError, RetryableError, classify_status, retry_api_call

logger = logging.getLogger(__name__)


class VideoSource(ABC):
    """Abstract base class for RapidAPI-hosted short-video search APIs.

    Subclasses describe the endpoint and how filters map onto its query
    parameters; fetching, error mapping and response decoding live here.
    """

    BASE_URL: str = ""
    API_HOST: str = ""

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None):
        """Initialize the source.

        Args:
            api_key: RapidAPI key
            client: Shared httpx client (a private one is created if omitted)
        """
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(timeout=30.0)

        if not self.api_key:
            logger.warning(
                f"[{self.get_source_name()}] No API key configured. Set RAPIDAPI_KEY to enable search."
            )

    @abstractmethod
    def get_source_name(self) -> str:
        """Get the name of this video source."""

    @abstractmethod
    def build_params(self, query: str, count: int, filters: SearchFilters) -> dict:
        """Translate a query and filters into request parameters."""

    def is_configured(self) -> bool:
        """Check if this source has an API key."""
        return bool(self.api_key)

    async def search_videos(
        self, query: str, count: int, filters: Optional[SearchFilters] = None
    ) -> list[CandidateVideo]:
        """Search for videos matching a query.

        Args:
            query: Search term
            count: Maximum number of candidates to return
            filters: Sorting, recency and region filters

        Returns:
            Up to ``count`` candidates, in provider order

        Raises:
            UpstreamUnavailableError: If the provider fails after retries
        """
        if not query or not query.strip():
            return []

        if not self.api_key:
            logger.debug(f"[{self.get_source_name()}] Skipping search - no API key configured")
            return []

        filters = filters or SearchFilters()
        logger.info(f"[{self.get_source_name()}] Searching for: '{query}' (count={count})")

        try:
            data = await self._fetch(self.build_params(query, count, filters))
        except RetryableError as e:
            raise UpstreamUnavailableError(self.get_source_name(), str(e)) from e

        payload = decode_search_payload(data)
        candidates = payload.to_candidates(query)[:count]
        logger.info(
            f"[{self.get_source_name()}] {type(payload).__name__} with "
            f"{len(payload.items)} hits, {len(candidates)} usable for '{query}'"
        )
        return candidates

    @retry_api_call(max_retries=3, base_delay=1.0)
    async def _fetch(self, params: dict) -> dict:
        headers = {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.API_HOST,
        }
        try:
            response = await self.client.get(self.BASE_URL, params=params, headers=headers)
        except httpx.TransportError as e:
            logger.error(f"[{self.get_source_name()}] Network error: {e}")
            raise NetworkError(f"{self.get_source_name()} network error: {e}") from e

        if response.status_code != 200:
            retryable = classify_status(response.status_code, self.get_source_name())
            if retryable:
                raise retryable
            raise UpstreamUnavailableError(
                self.get_source_name(), f"API returned status {response.status_code}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(self.get_source_name(), "response was not JSON") from e
