"""
HTTP client for the upstream catalog (Open Library).

Two endpoints are used:
- ``GET /recentchanges/{yyyy}/{mm}/{dd}/{kind}.json?offset=&limit=``
  returns a JSON array of change entries
- ``GET /{key}.json`` returns the canonical record envelope

Every failure is raised as a ``FetchError`` subclass with the URL,
status and (truncated) response body in its context. Retrying is the
caller's decision.
"""

import httpx
from pydantic import ValidationError
from datetime import date
from typing import List, Dict, Any, Optional
from core.config import settings
from core.exceptions import (
    FetchError,
    NetworkError,
    UpstreamStatusError,
    MalformedRecordError,
)
from schemas.records import ChangeEntry
import logging

logger = logging.getLogger(__name__)

PAGE_LIMIT = 1000


class OpenLibraryClient:
    """
    Thin async wrapper over ``httpx.AsyncClient``.

    Pass ``client`` to reuse (or mock) a transport; otherwise one is
    created on ``__aenter__`` and closed on ``__aexit__``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = (base_url or settings.UPSTREAM_BASE_URL).rstrip("/")
        self.user_agent = user_agent or settings.UPSTREAM_USER_AGENT
        self.timeout = timeout or settings.SYNC_TIMEOUT
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "OpenLibraryClient":
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def changes_url(self, day: date, kind: str, offset: int, limit: int = PAGE_LIMIT) -> str:
        return (
            f"{self.base_url}/recentchanges/{day:%Y/%m/%d}/{kind}.json"
            f"?offset={offset}&limit={limit}"
        )

    def record_url(self, key: str) -> str:
        return f"{self.base_url}{key}.json"

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def fetch_changes_page(
        self,
        day: date,
        kind: str,
        offset: int,
        limit: int = PAGE_LIMIT
    ) -> List[ChangeEntry]:
        """
        Fetch one page of the recent-changes feed.

        Raises:
            NetworkError: transport failure
            UpstreamStatusError: non-2xx status
            MalformedRecordError: body is not a JSON array
        """
        url = self.changes_url(day, kind, offset, limit)
        data = await self._get_json(url)

        if not isinstance(data, list):
            raise MalformedRecordError(
                "Recent changes response is not an array",
                context={"url": url, "response_type": type(data).__name__}
            )

        # Entry count drives paging, so unusable entries stay in as empty ones
        entries = []
        for item in data:
            try:
                entries.append(ChangeEntry(**item) if isinstance(item, dict) else ChangeEntry())
            except ValidationError:
                logger.warning(f"Skipping malformed change entry on {url}")
                entries.append(ChangeEntry())
        return entries

    async def fetch_record(self, key: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Fetch the canonical record for ``key``.

        Raises:
            NetworkError: transport failure or timeout
            UpstreamStatusError: non-2xx status
            MalformedRecordError: key does not form a valid URL, or the body
                is not an object carrying its own key
        """
        url = self.record_url(key)
        data = await self._get_json(url, timeout=timeout or self.timeout)

        if not isinstance(data, dict) or not data.get("key"):
            raise MalformedRecordError(
                "Record response is missing its key",
                context={"url": url, "requested_key": key}
            )
        return data

    async def _get_json(self, url: str, timeout: Optional[float] = None) -> Any:
        if self._client is None:
            raise FetchError(
                "Client used outside of its context manager",
                context={"url": url}
            )

        try:
            response = await self._client.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=timeout or self.timeout,
            )
        except httpx.InvalidURL as e:
            raise MalformedRecordError(
                f"Invalid request URL {url!r}",
                context={"url": url},
                original_exception=e
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {url}",
                context={"url": url, "timeout": timeout or self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error for {url}",
                context={"url": url},
                original_exception=e
            )

        if not response.is_success:
            raise UpstreamStatusError(
                f"Upstream returned {response.status_code} for {url}",
                status_code=response.status_code,
                context={
                    "url": url,
                    "response_body": _response_body(response),
                }
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedRecordError(
                "Failed to parse JSON response",
                context={"url": url, "response_body": response.text[:500]},
                original_exception=e
            )


def _response_body(response: httpx.Response) -> Any:
    """JSON body when the upstream says it is JSON, truncated text otherwise"""
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            pass
    return response.text[:500]
