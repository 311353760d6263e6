"""Feed synchronizer exceptions."""


class FeedSyncError(Exception):
    """Base class for feed synchronizer failures."""


class FeedFetchError(FeedSyncError):
    """A page fetch failed or the server answered success=false."""


class StreamConnectError(FeedSyncError):
    """The push channel could not be opened."""


class MediaDeleteError(FeedSyncError):
    """Deleting a media item failed; local state is left untouched."""
