"""Lazy thumbnail URL resolution for feed items."""
import logging
from collections.abc import Iterable

from hcphotos.schemas.feed import FeedItem, FeedMedia
from hcphotos.sync.client import FeedSource

logger = logging.getLogger(__name__)


class ThumbnailResolver:
    """Resolves storage keys to fetchable URLs in batches.

    The key -> URL map only grows; a resolved URL is kept for the
    resolver's lifetime.
    """

    def __init__(self, source: FeedSource, batch_size: int = 100):
        self._source = source
        self._batch_size = batch_size
        self._urls: dict[str, str] = {}
        self._pending: set[str] = set()

    @property
    def urls(self) -> dict[str, str]:
        return dict(self._urls)

    def url_for(self, media: FeedMedia | None) -> str | None:
        if media is None:
            return None
        return self._urls.get(media.url_key)

    def missing(self, items: Iterable[FeedItem]) -> list[FeedMedia]:
        """Media referenced by `items` whose key is neither resolved nor being resolved."""
        seen: set[str] = set()
        result: list[FeedMedia] = []
        for item in items:
            media = item.media
            if media is None:
                continue
            key = media.url_key
            if key in seen or key in self._urls or key in self._pending:
                continue
            seen.add(key)
            result.append(media)
        return result

    async def resolve(self, items: Iterable[FeedItem]) -> dict[str, str]:
        """Resolve URLs for unseen keys. Returns only the newly added entries."""
        todo = self.missing(items)
        added: dict[str, str] = {}
        for start in range(0, len(todo), self._batch_size):
            chunk = todo[start : start + self._batch_size]
            keys = [m.url_key for m in chunk]
            self._pending.update(keys)
            try:
                result = await self._source.resolve_thumbnail_urls(
                    [m.thumbnail_s3_key for m in chunk if m.thumbnail_s3_key],
                    [m.id for m in chunk if not m.thumbnail_s3_key],
                )
            except Exception as e:
                logger.error("[Feed] Failed to fetch image URLs: %s", e)
                continue
            finally:
                self._pending.difference_update(keys)
            if not result.success:
                logger.error("[Feed] Failed to fetch image URLs: %s", result.error)
                continue
            for key, url in result.urls.items():
                if key not in self._urls:
                    self._urls[key] = url
                    added[key] = url
        return added
