"""Builders and fakes shared by the feed tests."""
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from hcphotos.schemas.feed import (
    CommentActivity,
    FeedComment,
    FeedEvent,
    FeedMedia,
    FeedPage,
    FeedUploader,
    FeedUser,
    LikeActivity,
    MediaUrls,
    PhotoActivity,
)
from hcphotos.sync.errors import StreamConnectError

PUBLIC_EVENT = FeedEvent(id="ev-public", name="Hack Night", slug="hack-night", visibility="public")
MEMBERS_EVENT = FeedEvent(id="ev-members", name="Members Only", slug="members", visibility="auth_required")
UNLISTED_EVENT = FeedEvent(id="ev-unlisted", name="Secret", slug="secret", visibility="unlisted")

TS = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_user(user_id: str = "u1") -> FeedUser:
    return FeedUser(id=user_id, email=f"{user_id}@hackclub.com", name=f"User {user_id}")


def make_media(media_id: str, thumbnail_key: str | None = None, uploader_id: str = "u1", can_delete: bool = False) -> FeedMedia:
    return FeedMedia(
        id=media_id,
        filename=f"{media_id}.jpg",
        s3_url=f"s3://photos/{media_id}.jpg",
        mime_type="image/jpeg",
        width=1920,
        height=1080,
        thumbnail_s3_key=thumbnail_key,
        uploaded_at=TS,
        uploaded_by=FeedUploader(id=uploader_id, name=f"User {uploader_id}"),
        can_delete=can_delete,
    )


def photo(item_id: str, media_id: str | None = None, event: FeedEvent | None = PUBLIC_EVENT, **media_kwargs) -> PhotoActivity:
    return PhotoActivity(
        id=item_id,
        timestamp=TS,
        event=event,
        user=make_user(),
        media=make_media(media_id or f"m-{item_id}", **media_kwargs),
    )


def like(item_id: str, media_id: str, event: FeedEvent | None = PUBLIC_EVENT) -> LikeActivity:
    return LikeActivity(id=item_id, timestamp=TS, event=event, user=make_user("u2"), media=make_media(media_id))


def comment(item_id: str, media_id: str, text: str = "nice shot", event: FeedEvent | None = PUBLIC_EVENT) -> CommentActivity:
    return CommentActivity(
        id=item_id,
        timestamp=TS,
        event=event,
        user=make_user("u3"),
        comment=FeedComment(id=f"c-{item_id}", content=text, media_id=media_id),
        media=make_media(media_id),
    )


def page(items, has_more: bool = False) -> FeedPage:
    return FeedPage(success=True, items=list(items), has_more=has_more)


def wire(item) -> dict:
    return item.model_dump(mode="json", by_alias=True)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def blocked_sleep(_delay: float) -> None:
    await asyncio.Event().wait()


class FakeSource:
    """In-memory FeedSource. Page responses are served in order; exceptions are raised."""

    def __init__(self, pages=None):
        self.pages = list(pages or [])
        self.page_calls: list[tuple[int, int]] = []
        self.url_calls: list[tuple[list[str], list[str]]] = []
        self.full_url_calls: list[str] = []
        self.deleted: list[str] = []
        self.delete_error: Exception | None = None
        self.session_user: str | None = None
        self.page_gate: asyncio.Event | None = None
        self.full_url_gates: dict[str, asyncio.Event] = {}
        self.stream_factory = None
        self.stream_opens = 0

    async def fetch_page(self, limit: int, offset: int) -> FeedPage:
        self.page_calls.append((limit, offset))
        response = self.pages.pop(0) if self.pages else page([])
        if self.page_gate is not None:
            await self.page_gate.wait()
        if isinstance(response, Exception):
            raise response
        return response

    def open_stream(self):
        self.stream_opens += 1
        if self.stream_factory is None:
            return _refused_stream()
        return self.stream_factory()

    async def resolve_thumbnail_urls(self, thumbnail_keys: list[str], media_ids: list[str]) -> MediaUrls:
        self.url_calls.append((list(thumbnail_keys), list(media_ids)))
        return MediaUrls(urls={key: f"https://cdn.test/{key}" for key in [*thumbnail_keys, *media_ids]})

    async def resolve_full_url(self, media_id: str) -> MediaUrls:
        self.full_url_calls.append(media_id)
        gate = self.full_url_gates.get(media_id)
        if gate is not None:
            await gate.wait()
        return MediaUrls(urls={media_id: f"https://cdn.test/full/{media_id}"})

    async def delete_media(self, media_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(media_id)

    async def fetch_session(self) -> str | None:
        return self.session_user


@asynccontextmanager
async def _refused_stream():
    raise StreamConnectError("refused")
    yield  # pragma: no cover
