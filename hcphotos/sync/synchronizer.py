"""Feed synchronizer - keeps a live view of feed activity.

The global feed listens on the push channel and reconnects with backoff;
event and series feeds poll on a fixed interval instead. Both paths merge
into one FeedList, so an item delivered twice (push racing a poll, or a
page overlapping a live item) shows up once.
"""
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
)

from hcphotos.core.config import settings
from hcphotos.schemas.feed import ActivityMessage, FeedItem, FeedMedia, FeedPage, PhotoDeletedMessage, PushMessage
from hcphotos.sync.client import FeedScope, FeedSource
from hcphotos.sync.errors import FeedFetchError, MediaDeleteError, StreamConnectError
from hcphotos.sync.merge import FeedList
from hcphotos.sync.pagination import PaginationCursor
from hcphotos.sync.sse import parse_push_message
from hcphotos.sync.thumbnails import ThumbnailResolver

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    INIT = "init"
    READY = "ready"
    CONNECTING = "connecting"
    LIVE = "live"
    RECONNECTING = "reconnecting"
    POLLING = "polling"
    GAVE_UP = "gave_up"
    CLOSED = "closed"


@dataclass
class FeedSyncConfig:
    page_size: int = 20
    poll_limit: int = 10
    poll_interval: float = 30.0
    new_item_seconds: float = 5.0
    sentinel_threshold: float = 0.1
    reconnect_base_delay_ms: int = 1000
    reconnect_max_delay_ms: int = 30000
    max_reconnect_attempts: int | None = None
    url_batch_size: int = 100

    @classmethod
    def from_settings(cls) -> "FeedSyncConfig":
        return cls(
            page_size=settings.FEED_PAGE_SIZE,
            poll_limit=settings.FEED_POLL_LIMIT,
            poll_interval=settings.FEED_POLL_INTERVAL_SECONDS,
            new_item_seconds=settings.FEED_NEW_ITEM_SECONDS,
            sentinel_threshold=settings.FEED_SENTINEL_THRESHOLD,
            reconnect_base_delay_ms=settings.RECONNECT_BASE_DELAY_MS,
            reconnect_max_delay_ms=settings.RECONNECT_MAX_DELAY_MS,
            max_reconnect_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            url_batch_size=settings.MEDIA_URL_BATCH_SIZE,
        )

    def reconnect_wait(self) -> wait_exponential:
        """Doubling delay in seconds, starting at the base delay and capped at the max."""
        return wait_exponential(
            multiplier=self.reconnect_base_delay_ms / 1000,
            max=self.reconnect_max_delay_ms / 1000,
        )

    def reconnect_stop(self):
        if self.max_reconnect_attempts:
            return stop_after_attempt(self.max_reconnect_attempts)
        return stop_never


class _StreamEnded(Exception):
    """A push stream that was live has ended or failed."""


class FeedSynchronizer:
    """Owns the feed list, its transports and every timer they use.

    `start()` loads the first page and starts the push or poll loop;
    `dispose()` cancels all of it. Use as an async context manager to get
    both.
    """

    def __init__(
        self,
        source: FeedSource,
        scope: FeedScope = FeedScope.GLOBAL,
        config: FeedSyncConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or FeedSyncConfig.from_settings()
        self.scope = scope
        self._source = source
        self._sleep = sleep
        self.items = FeedList(new_item_seconds=self.config.new_item_seconds, clock=clock)
        self.thumbnails = ThumbnailResolver(source, batch_size=self.config.url_batch_size)
        self.cursor = PaginationCursor(page_size=self.config.page_size, threshold=self.config.sentinel_threshold)
        self.state = ConnectionState.INIT
        self.error: str | None = None
        self.loading = False
        self.current_user_id: str | None = None
        self.selected_media_id: str | None = None
        self.full_size_url: str | None = None
        self._stream_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._reconnect_attempts = 0
        self._closed = False

    async def __aenter__(self) -> "FeedSynchronizer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.dispose()

    # Connection state

    @property
    def is_live(self) -> bool:
        return self.state is ConnectionState.LIVE

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def status_label(self) -> str:
        return "Realtime" if self.is_live else "Disconnected"

    @property
    def closed(self) -> bool:
        return self._closed

    # Lifecycle

    async def start(self) -> None:
        if self.state is not ConnectionState.INIT:
            raise RuntimeError(f"FeedSynchronizer already started (state={self.state.value})")
        await self.refresh()
        self.current_user_id = await self._load_session()
        if self._closed:
            return
        self.state = ConnectionState.READY
        if self.scope is FeedScope.GLOBAL:
            self._stream_task = asyncio.create_task(self._run_stream(), name="feed-stream")
        else:
            self.state = ConnectionState.POLLING
            self._poll_task = asyncio.create_task(self._run_poll(), name="feed-poll")

    async def stop(self) -> None:
        """Close the push channel, cancel backoff/poll timers and pending URL lookups."""
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._stream_task, self._poll_task, *self._background) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._stream_task = None
        self._poll_task = None
        self._background.clear()
        self.state = ConnectionState.CLOSED

    async def dispose(self) -> None:
        await self.stop()

    # Loading

    async def _fetch(self, limit: int, offset: int) -> FeedPage:
        page = await self._source.fetch_page(limit, offset)
        if not page.success:
            raise FeedFetchError(page.error or "Failed to fetch feed")
        return page

    async def refresh(self) -> bool:
        """Load page 0 and replace the list. On failure the list is left as is and `error` is set."""
        self.loading = True
        try:
            page = await self._fetch(self.config.page_size, 0)
        except Exception as e:
            logger.error("[Feed] Feed error: %s", e)
            self.error = str(e) or "Failed to load feed"
            return False
        finally:
            self.loading = False
        self.items.replace(page.items)
        self.cursor.has_more = page.has_more
        self.error = None
        await self.thumbnails.resolve(page.items)
        return True

    async def load_more(self) -> list[FeedItem]:
        """Fetch the next page (offset = items loaded so far) and append unseen items."""
        if self._closed or not self.cursor.has_more or self.cursor.in_flight:
            return []
        self.cursor.in_flight = True
        self.loading = True
        try:
            page = await self._fetch(self.config.page_size, self.cursor.next_offset(len(self.items)))
        except Exception as e:
            logger.error("[Feed] Feed error: %s", e)
            self.error = str(e) or "Failed to load feed"
            return []
        finally:
            self.cursor.in_flight = False
            self.loading = False
        added = self.items.append_page(page.items)
        self.cursor.has_more = page.has_more
        self.error = None
        await self.thumbnails.resolve(added)
        return added

    async def on_sentinel_visible(self, intersection_ratio: float) -> list[FeedItem]:
        if not self.cursor.should_load(intersection_ratio):
            return []
        return await self.load_more()

    @property
    def sentinel_observed(self) -> bool:
        return self.cursor.sentinel_observed

    # Live updates

    def apply_message(self, message: PushMessage) -> bool:
        """Apply one push message. Returns True when the list changed."""
        if self._closed:
            return False
        if isinstance(message, PhotoDeletedMessage):
            return self.items.remove_media(message.media_id) > 0
        return self.items.prepend_live(message.item)

    def handle_payload(self, payload: str) -> PushMessage | None:
        message = parse_push_message(payload)
        if message is None:
            return None
        if self.apply_message(message) and isinstance(message, ActivityMessage):
            self._spawn(self.thumbnails.resolve([message.item]))
        return message

    async def poll_once(self) -> list[FeedItem]:
        """One poll tick. De-duplicates against the list as it is when the fetch returns."""
        if self._closed:
            return []
        try:
            page = await self._fetch(self.config.poll_limit, 0)
        except Exception as e:
            logger.error("[Feed] Poll error: %s", e)
            return []
        added = self.items.prepend_many(page.items)
        if added:
            await self.thumbnails.resolve(added)
        return added

    async def _run_poll(self) -> None:
        while not self._closed:
            await self._sleep(self.config.poll_interval)
            await self.poll_once()

    def _reconnect_policy(self) -> AsyncRetrying:
        # CancelledError is not an Exception, so dispose() is never retried
        return AsyncRetrying(
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(_StreamEnded),
            wait=self.config.reconnect_wait(),
            stop=self.config.reconnect_stop(),
            sleep=self._sleep,
            before_sleep=self._before_reconnect,
        )

    def _before_reconnect(self, retry_state: RetryCallState) -> None:
        self._reconnect_attempts = retry_state.attempt_number
        self.state = ConnectionState.RECONNECTING
        logger.error("[Feed] SSE error: %s", retry_state.outcome.exception())
        logger.info(
            "[Feed] Reconnecting in %.1fs (attempt %d)",
            retry_state.next_action.sleep,
            retry_state.attempt_number,
        )

    async def _stream_session(self) -> None:
        self.state = ConnectionState.CONNECTING
        async with self._source.open_stream() as payloads:
            self.state = ConnectionState.LIVE
            self._reconnect_attempts = 0
            logger.info("[Feed] SSE connected")
            try:
                async for payload in payloads:
                    self.handle_payload(payload)
            except Exception as e:
                raise _StreamEnded(str(e) or "SSE stream failed") from e
        raise _StreamEnded("SSE stream ended")

    async def _run_stream(self) -> None:
        """Keep the push channel open.

        Each time a stream goes live a fresh retry run starts, so the attempt
        count resets and the stream ending is that run's first failure.
        """
        ended: _StreamEnded | None = None
        while not self._closed:
            try:
                async for attempt in self._reconnect_policy():
                    with attempt:
                        if ended is not None:
                            error, ended = ended, None
                            raise StreamConnectError(str(error))
                        await self._stream_session()
            except _StreamEnded as e:
                ended = e
            except RetryError as e:
                logger.warning(
                    "[Feed] Giving up after %d reconnect attempts: %s",
                    e.last_attempt.attempt_number,
                    e.last_attempt.exception(),
                )
                self.state = ConnectionState.GAVE_UP
                return

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Selection and deletion

    @property
    def selected_media(self) -> FeedMedia | None:
        if self.selected_media_id is None:
            return None
        item = self.items.find_by_media(self.selected_media_id)
        return item.media if item else None

    async def select(self, media: FeedMedia | str) -> str | None:
        """Select an item for the detail view and resolve its full-size URL.

        A result arriving after another selection (or deselect) is dropped.
        """
        media_id = media if isinstance(media, str) else media.id
        self.selected_media_id = media_id
        self.full_size_url = None
        try:
            result = await self._source.resolve_full_url(media_id)
        except Exception as e:
            logger.error("[Feed] Failed to load full-size image: %s", e)
            return None
        if self.selected_media_id != media_id:
            return None
        if result.success and media_id in result.urls:
            self.full_size_url = result.urls[media_id]
        return self.full_size_url

    def deselect(self) -> None:
        self.selected_media_id = None
        self.full_size_url = None

    def can_delete(self, media: FeedMedia) -> bool:
        if media.can_delete:
            return True
        uploader = media.uploaded_by
        return bool(self.current_user_id and uploader and uploader.id == self.current_user_id)

    async def delete_media(self, media_id: str) -> int:
        """Delete on the server, then drop every item referencing the media.

        Raises MediaDeleteError and leaves the list untouched when the server refuses.
        """
        try:
            await self._source.delete_media(media_id)
        except MediaDeleteError as e:
            logger.error("[Feed] Failed to delete media: %s", e)
            raise
        except Exception as e:
            logger.error("[Feed] Failed to delete media: %s", e)
            raise MediaDeleteError(str(e) or "Failed to delete media") from e
        removed = self.items.remove_media(media_id)
        if self.selected_media_id == media_id:
            self.deselect()
        return removed

    async def _load_session(self) -> str | None:
        try:
            return await self._source.fetch_session()
        except Exception as e:
            logger.error("[Feed] Error fetching user session: %s", e)
            return None

    # Rendering helpers

    def image_url(self, item: FeedItem) -> str | None:
        return self.thumbnails.url_for(item.media)
