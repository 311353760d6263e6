"""Feed collaborators: the FeedSource protocol and its HTTP implementation.

Paths mirror the web app's routes:
  GET    /api/v1/feed                      global feed page
  GET    /api/v1/events/{id}/feed          event feed page
  GET    /api/v1/series/{id}/feed          series feed page
  GET    /api/v1/feed/stream               push channel (SSE)
  POST   /api/v1/media/urls                URL resolution
  DELETE /api/v1/media/{id}                delete
  GET    /api/auth/session                 current session
"""
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import Enum
from typing import Protocol

import httpx
from pydantic import ValidationError

from hcphotos.core.config import settings
from hcphotos.schemas.feed import FeedPage, MediaUrls, MediaUrlsRequest, feed_item_adapter
from hcphotos.sync.errors import FeedFetchError, MediaDeleteError, StreamConnectError
from hcphotos.sync.sse import iter_sse_data

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/v1/feed/stream"
MEDIA_URLS_PATH = "/api/v1/media/urls"
SESSION_PATH = "/api/auth/session"


class FeedScope(str, Enum):
    GLOBAL = "global"
    EVENT = "event"
    SERIES = "series"


class FeedSource(Protocol):
    """What the synchronizer needs from the outside world."""

    async def fetch_page(self, limit: int, offset: int) -> FeedPage:
        ...

    def open_stream(self) -> AbstractAsyncContextManager[AsyncIterator[str]]:
        """Open the push channel; the context yields raw SSE data payloads."""
        ...

    async def resolve_thumbnail_urls(self, thumbnail_keys: list[str], media_ids: list[str]) -> MediaUrls:
        ...

    async def resolve_full_url(self, media_id: str) -> MediaUrls:
        ...

    async def delete_media(self, media_id: str) -> None:
        ...

    async def fetch_session(self) -> str | None:
        ...


def _error_from_response(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"


def _parse_page(body) -> FeedPage:
    """Validate a page body item by item; items that fail validation are logged and skipped."""
    if not isinstance(body, dict):
        raise FeedFetchError("Invalid feed page: expected an object")
    raw_items = body.get("items") or []
    try:
        result = FeedPage.model_validate({**body, "items": []})
    except ValidationError as e:
        raise FeedFetchError(f"Invalid feed page: {e}") from e
    for raw in raw_items:
        try:
            result.items.append(feed_item_adapter.validate_python(raw))
        except ValidationError as e:
            item_id = raw.get("id") if isinstance(raw, dict) else None
            logger.warning("[Feed] Skipping invalid feed item %s: %s", item_id, e)
    return result


class FeedApiClient:
    """FeedSource over HTTP. One client per feed scope."""

    def __init__(
        self,
        scope: FeedScope = FeedScope.GLOBAL,
        scope_id: str | None = None,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if scope is not FeedScope.GLOBAL and not scope_id:
            raise ValueError(f"{scope.value} feed requires a scope_id")
        self.scope = scope
        self.scope_id = scope_id
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip("/"),
            timeout=self._timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "FeedApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def page_path(self) -> str:
        if self.scope is FeedScope.EVENT:
            return f"/api/v1/events/{self.scope_id}/feed"
        if self.scope is FeedScope.SERIES:
            return f"/api/v1/series/{self.scope_id}/feed"
        return "/api/v1/feed"

    async def fetch_page(self, limit: int, offset: int) -> FeedPage:
        try:
            response = await self._client.get(self.page_path, params={"limit": limit, "offset": offset})
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Failed to fetch feed: {e}") from e
        if response.status_code != 200:
            return FeedPage(success=False, error=_error_from_response(response))
        try:
            body = response.json()
        except ValueError as e:
            raise FeedFetchError(f"Invalid feed page: {e}") from e
        return _parse_page(body)

    @asynccontextmanager
    async def open_stream(self) -> AsyncIterator[AsyncIterator[str]]:
        try:
            async with self._client.stream(
                "GET",
                STREAM_PATH,
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                if response.status_code != 200:
                    raise StreamConnectError(f"Push channel refused: HTTP {response.status_code}")
                yield iter_sse_data(response.aiter_lines())
        except httpx.HTTPError as e:
            raise StreamConnectError(f"Push channel error: {e}") from e

    async def _resolve(self, request: MediaUrlsRequest) -> MediaUrls:
        try:
            response = await self._client.post(MEDIA_URLS_PATH, json=request.model_dump(by_alias=True))
        except httpx.HTTPError as e:
            raise FeedFetchError(f"Failed to resolve media URLs: {e}") from e
        if response.status_code != 200:
            return MediaUrls(success=False, error=_error_from_response(response))
        try:
            return MediaUrls.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise FeedFetchError(f"Invalid media URL response: {e}") from e

    async def resolve_thumbnail_urls(self, thumbnail_keys: list[str], media_ids: list[str]) -> MediaUrls:
        return await self._resolve(MediaUrlsRequest(s3_keys=thumbnail_keys, media_ids=media_ids))

    async def resolve_full_url(self, media_id: str) -> MediaUrls:
        return await self._resolve(MediaUrlsRequest(media_ids=[media_id]))

    async def delete_media(self, media_id: str) -> None:
        try:
            response = await self._client.delete(f"/api/v1/media/{media_id}")
        except httpx.HTTPError as e:
            raise MediaDeleteError(f"Failed to delete media: {e}") from e
        if response.status_code not in (200, 204):
            raise MediaDeleteError(_error_from_response(response))
        if response.status_code == 200 and response.content:
            try:
                body = response.json()
            except ValueError:
                return
            if isinstance(body, dict) and body.get("success") is False:
                raise MediaDeleteError(str(body.get("error") or "Failed to delete media"))

    async def fetch_session(self) -> str | None:
        try:
            response = await self._client.get(SESSION_PATH)
        except httpx.HTTPError as e:
            logger.error("[Feed] Error fetching user session: %s", e)
            return None
        if response.status_code != 200:
            return None
        user = (response.json() or {}).get("user") or {}
        return user.get("id")
