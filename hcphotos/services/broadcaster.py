"""Push channel fan-out for the activity feed.

Each connected stream gets its own bounded queue. Activity is delivered
only to viewers allowed to see the activity's event; deletions go to
everyone so stale items disappear from every open feed.
"""
import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

from hcphotos.core.config import settings
from hcphotos.schemas.feed import FeedEvent, FeedItem
from hcphotos.sync.sse import format_comment, format_sse

logger = logging.getLogger(__name__)

EventAccessCheck = Callable[[str | None, FeedEvent], Awaitable[bool]]
BanCheck = Callable[[str | None], Awaitable[bool]]


async def default_is_banned(viewer_id: str | None) -> bool:
    return viewer_id is not None and viewer_id in settings.BANNED_USER_IDS


async def default_can_view(viewer_id: str | None, event: FeedEvent) -> bool:
    """Visibility-only access check.

    Unlisted events need participant data the policy engine owns, so they
    are withheld unless a richer check is plugged in.
    """
    if event.visibility == "public":
        return True
    if event.visibility == "auth_required":
        return viewer_id is not None
    return False


@dataclass(eq=False)
class Subscriber:
    viewer_id: str | None
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=settings.SSE_QUEUE_SIZE))


class FeedBroadcaster:
    def __init__(
        self,
        can_view: EventAccessCheck = default_can_view,
        heartbeat_seconds: float | None = None,
        is_banned: BanCheck = default_is_banned,
    ):
        self._subscribers: set[Subscriber] = set()
        self._can_view = can_view
        self.is_banned = is_banned
        self._heartbeat = heartbeat_seconds if heartbeat_seconds is not None else settings.SSE_HEARTBEAT_SECONDS

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, viewer_id: str | None) -> Subscriber:
        subscriber = Subscriber(viewer_id=viewer_id)
        self._subscribers.add(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.discard(subscriber)

    def _deliver(self, subscriber: Subscriber, data: str) -> bool:
        try:
            subscriber.queue.put_nowait(data)
            return True
        except asyncio.QueueFull:
            logger.error("[SSE] Error sending to client (removing): queue full")
            self._subscribers.discard(subscriber)
            return False

    async def notify(self, message: dict) -> int:
        """Send a feed message to every subscriber allowed to see it. Returns the number delivered."""
        data = json.dumps(message, default=str)
        if message.get("type") == "photo_deleted":
            return sum(self._deliver(s, data) for s in list(self._subscribers))

        event_data = (message.get("item") or {}).get("event") or {}
        if not event_data.get("id"):
            return 0
        event = FeedEvent.model_validate(event_data)
        sent = 0
        for subscriber in list(self._subscribers):
            try:
                if await self.is_banned(subscriber.viewer_id):
                    continue
                allowed = await self._can_view(subscriber.viewer_id, event)
            except Exception as e:
                logger.error("[SSE] Error sending to client (removing): %s", e)
                self._subscribers.discard(subscriber)
                continue
            if allowed and self._deliver(subscriber, data):
                sent += 1
        return sent

    async def stream(self, subscriber: Subscriber) -> AsyncIterator[str]:
        """SSE frames for one subscriber: a connected marker, data frames, heartbeats when idle."""
        try:
            yield format_comment("connected")
            while True:
                try:
                    data = await asyncio.wait_for(subscriber.queue.get(), timeout=self._heartbeat)
                except asyncio.TimeoutError:
                    yield format_comment("heartbeat")
                    continue
                yield format_sse(data)
        finally:
            self.unsubscribe(subscriber)


def _activity_message(message_type: str, item: FeedItem) -> dict:
    return {"type": message_type, "item": item.model_dump(mode="json", by_alias=True)}


async def broadcast_new_photo(broadcaster: FeedBroadcaster, item: FeedItem) -> int:
    return await broadcaster.notify(_activity_message("new_photo", item))


async def broadcast_new_comment(broadcaster: FeedBroadcaster, item: FeedItem) -> int:
    return await broadcaster.notify(_activity_message("new_comment", item))


async def broadcast_new_like(broadcaster: FeedBroadcaster, item: FeedItem) -> int:
    return await broadcaster.notify(_activity_message("new_like", item))


async def broadcast_photo_deleted(broadcaster: FeedBroadcaster, media_id: str) -> int:
    return await broadcaster.notify({"type": "photo_deleted", "mediaId": media_id})


_broadcaster: FeedBroadcaster | None = None


def get_broadcaster() -> FeedBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = FeedBroadcaster()
    return _broadcaster
