from hcphotos.schemas.feed import (
    FeedEvent,
    FeedUser,
    FeedMedia,
    FeedComment,
    FeedItem,
    PhotoActivity,
    LikeActivity,
    CommentActivity,
)
from hcphotos.schemas.feed import FeedPage, MediaUrls, MediaUrlsRequest
from hcphotos.schemas.feed import ActivityMessage, PhotoDeletedMessage, PushMessage
