import argparse
import asyncio
import logging

from hcphotos.sync.client import FeedApiClient, FeedScope
from hcphotos.sync.synchronizer import FeedSynchronizer


def describe(item) -> str:
    who = item.user.name or item.user.email or item.user.id
    where = item.event.name if item.event else "no event"
    what = item.media.filename if item.media else "a deleted photo"
    if item.type == "comment":
        return f"{who} commented on {what} ({where}): {item.comment.content}"
    if item.type == "like":
        return f"{who} liked {what} ({where})"
    return f"{who} uploaded {what} ({where})"


async def watch_feed(scope: FeedScope, scope_id: str | None, token: str | None, interval: float):
    async with FeedApiClient(scope=scope, scope_id=scope_id, token=token) as client:
        async with FeedSynchronizer(client, scope=scope) as sync:
            if sync.error:
                print(f"Failed to load feed: {sync.error}")
            print(f"Loaded {len(sync.items)} items (more available: {sync.cursor.has_more})")
            for item in sync.items.items:
                print(f"  - {describe(item)}")

            seen = set(sync.items.ids)
            last_state = None
            while not sync.closed:
                if sync.state != last_state:
                    print(f"[{sync.state.value}] {sync.status_label}")
                    last_state = sync.state
                for entry in sync.items.entries():
                    if entry.item.id not in seen:
                        seen.add(entry.item.id)
                        print(f"  + {describe(entry.item)}")
                await asyncio.sleep(interval)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Follow a Hack Club Photos activity feed")
    parser.add_argument("--event", help="event id to follow (polling)")
    parser.add_argument("--series", help="series id to follow (polling)")
    parser.add_argument("--token", help="bearer token for the API")
    parser.add_argument("--interval", type=float, default=1.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if args.event:
        scope, scope_id = FeedScope.EVENT, args.event
    elif args.series:
        scope, scope_id = FeedScope.SERIES, args.series
    else:
        scope, scope_id = FeedScope.GLOBAL, None
    try:
        asyncio.run(watch_feed(scope, scope_id, args.token, args.interval))
    except KeyboardInterrupt:
        print("Stopped")
