"""Ordered, de-duplicated feed item list.

Ordering is insertion based: the initial page and paginated pages keep
server order, live items go to the head. Item timestamps are never used
for ordering.
"""
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from hcphotos.schemas.feed import FeedItem


@dataclass(frozen=True)
class FeedEntry:
    item: FeedItem
    is_new: bool


class FeedList:
    """Merge engine for feed items. Holds each item id at most once."""

    def __init__(self, new_item_seconds: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self._items: list[FeedItem] = []
        self._ids: set[str] = set()
        self._new_until: dict[str, float] = {}
        self._new_item_seconds = new_item_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[FeedItem]:
        return iter(list(self._items))

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    @property
    def items(self) -> list[FeedItem]:
        return list(self._items)

    @property
    def ids(self) -> list[str]:
        return [item.id for item in self._items]

    def entries(self) -> list[FeedEntry]:
        return [FeedEntry(item=item, is_new=self.is_new(item.id)) for item in self._items]

    def replace(self, items: Iterable[FeedItem]) -> list[FeedItem]:
        """Discard the current list and load `items` (duplicates within the batch dropped)."""
        self._items = []
        self._ids = set()
        self._new_until = {}
        return self._extend(items)

    def append_page(self, items: Iterable[FeedItem]) -> list[FeedItem]:
        """Append unseen items after the existing ones. Returns the items actually added."""
        return self._extend(items)

    def prepend_live(self, item: FeedItem) -> bool:
        """Insert a live item at the head. No-op (False) when its id is already present."""
        if item.id in self._ids:
            return False
        self._items.insert(0, item)
        self._ids.add(item.id)
        self._mark_new(item.id)
        return True

    def prepend_many(self, items: Iterable[FeedItem]) -> list[FeedItem]:
        """Prepend unseen items as a block, keeping their fetch order."""
        added: list[FeedItem] = []
        for item in items:
            if item.id in self._ids:
                continue
            added.append(item)
            self._ids.add(item.id)
            self._mark_new(item.id)
        if added:
            self._items = added + self._items
        return added

    def remove_media(self, media_id: str) -> int:
        """Drop every item that references `media_id`. Returns how many were removed."""
        kept: list[FeedItem] = []
        removed = 0
        for item in self._items:
            if item.media is not None and item.media.id == media_id:
                self._ids.discard(item.id)
                self._new_until.pop(item.id, None)
                removed += 1
            else:
                kept.append(item)
        self._items = kept
        return removed

    def find_by_media(self, media_id: str) -> FeedItem | None:
        for item in self._items:
            if item.media is not None and item.media.id == media_id:
                return item
        return None

    def is_new(self, item_id: str) -> bool:
        until = self._new_until.get(item_id)
        if until is None:
            return False
        if self._clock() >= until:
            del self._new_until[item_id]
            return False
        return True

    def new_ids(self) -> set[str]:
        return {item_id for item_id in list(self._new_until) if self.is_new(item_id)}

    def _mark_new(self, item_id: str) -> None:
        self._new_until[item_id] = self._clock() + self._new_item_seconds

    def _extend(self, items: Iterable[FeedItem]) -> list[FeedItem]:
        added: list[FeedItem] = []
        for item in items:
            if item.id in self._ids:
                continue
            self._items.append(item)
            self._ids.add(item.id)
            added.append(item)
        return added
