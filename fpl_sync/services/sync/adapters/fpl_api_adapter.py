"""FPL API adapter for the sync layer.

Thin async client over the public Fantasy Premier League endpoints:
- bootstrap-static/: teams, players (elements), events, phases
- fixtures/?event={id}: fixtures of one event
- event/{id}/live/: live points per player for one event
- entry/{id}/ and entry/{id}/history/: one manager's team
- entry/{id}/event/{event}/picks/ and entry/{id}/transfers/: squads and transfers

Responses are returned as decoded JSON; shape validation happens downstream.
Transport errors and 5xx responses are retried with exponential backoff.
Everything that still fails is raised as FetchError.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fpl_sync.core import metrics
from fpl_sync.core.errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "fpl-sync/1.0",
    "Accept": "application/json",
}


def _is_retryable(error: BaseException) -> bool:
    """Retry transport failures and server errors, never client errors."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, (httpx.RequestError, httpx.TimeoutException))


def extract_section(document: Dict[str, Any], name: str, endpoint: str) -> List[Any]:
    """Extract a list section (e.g. 'teams') from a response document."""
    items = document.get(name)
    if not isinstance(items, list):
        raise FetchError(
            f"Response from {endpoint} has no '{name}' list",
            details={"endpoint": endpoint, "section": name},
        )
    return items


class FplApiAdapter:
    """
    Adapter for the FPL public API.

    Usage:
        async with FplApiAdapter(base_url) as adapter:
            bootstrap = await adapter.get_bootstrap_static()
    """

    def __init__(
        self,
        base_url: str = "https://fantasy.premierleague.com/api",
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_min: float = 2,
        backoff_max: float = 10,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the adapter.

        Args:
            base_url: API root without trailing slash
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request including the first
            backoff_min: Minimum wait between attempts in seconds
            backoff_max: Maximum wait between attempts in seconds
            client: Optional preconfigured client (owned by the caller)
        """
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, headers=DEFAULT_HEADERS, follow_redirects=True
        )

    async def __aenter__(self) -> "FplApiAdapter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _fetch_with_retry(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{endpoint}"
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                n = attempt.retry_state.attempt_number
                if n > 1:
                    logger.info(f"Retrying {endpoint} (attempt {n}/{self.max_attempts})")
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                return response.json()

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        label = endpoint.split("/")[0]
        try:
            data = await self._fetch_with_retry(endpoint, params)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            metrics.fpl_api_requests_total.labels(endpoint=label, status=str(status)).inc()
            raise FetchError(
                f"FPL API returned {status} for {endpoint}",
                cause=e,
                details={"endpoint": endpoint, "status": status},
            ) from e
        except (httpx.RequestError, httpx.TimeoutException) as e:
            metrics.fpl_api_requests_total.labels(endpoint=label, status="transport_error").inc()
            raise FetchError(
                f"FPL API request failed for {endpoint}: {e!r}",
                cause=e,
                details={"endpoint": endpoint},
            ) from e
        except ValueError as e:
            metrics.fpl_api_requests_total.labels(endpoint=label, status="invalid_json").inc()
            raise FetchError(
                f"FPL API returned invalid JSON for {endpoint}",
                cause=e,
                details={"endpoint": endpoint},
            ) from e

        metrics.fpl_api_requests_total.labels(endpoint=label, status="200").inc()
        return data

    @staticmethod
    def _expect(data: Any, expected: type, endpoint: str) -> Any:
        if not isinstance(data, expected):
            raise FetchError(
                f"Unexpected response shape from {endpoint}: expected {expected.__name__}, "
                f"got {type(data).__name__}",
                details={"endpoint": endpoint},
            )
        return data

    # ========================================================================
    # Endpoints
    # ========================================================================

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        endpoint = "bootstrap-static/"
        return self._expect(await self._get_json(endpoint), dict, endpoint)

    async def get_fixtures(self, event_id: int) -> List[Dict[str, Any]]:
        endpoint = "fixtures/"
        data = await self._get_json(endpoint, params={"event": event_id})
        return self._expect(data, list, endpoint)

    async def get_event_live(self, event_id: int) -> Dict[str, Any]:
        endpoint = f"event/{event_id}/live/"
        return self._expect(await self._get_json(endpoint), dict, endpoint)

    async def get_entry(self, entry_id: int) -> Dict[str, Any]:
        endpoint = f"entry/{entry_id}/"
        return self._expect(await self._get_json(endpoint), dict, endpoint)

    async def get_entry_history(self, entry_id: int) -> Dict[str, Any]:
        endpoint = f"entry/{entry_id}/history/"
        return self._expect(await self._get_json(endpoint), dict, endpoint)

    async def get_entry_event_picks(self, entry_id: int, event_id: int) -> Dict[str, Any]:
        endpoint = f"entry/{entry_id}/event/{event_id}/picks/"
        return self._expect(await self._get_json(endpoint), dict, endpoint)

    async def get_entry_transfers(self, entry_id: int) -> List[Dict[str, Any]]:
        endpoint = f"entry/{entry_id}/transfers/"
        return self._expect(await self._get_json(endpoint), list, endpoint)
