"""Feed item schemas - activity feed (photo uploads, comments, likes) and push messages."""
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase wire keys or snake_case names. Dump with by_alias=True for the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FeedEvent(CamelModel):
    id: str | None = None
    name: str | None = None
    slug: str | None = None
    visibility: str | None = None  # public | auth_required | unlisted
    series_id: str | None = None


class FeedUser(CamelModel):
    id: str
    email: str | None = None
    name: str | None = None
    slack_id: str | None = None
    avatar_s3_key: str | None = None
    handle: str | None = None


class FeedUploader(CamelModel):
    id: str | None = None
    name: str | None = None
    handle: str | None = None
    avatar_s3_key: str | None = None
    slack_id: str | None = None


class FeedMedia(CamelModel):
    id: str
    filename: str
    s3_url: str | None = None
    mime_type: str
    width: int | None = None
    height: int | None = None
    thumbnail_s3_key: str | None = None
    exif_data: dict[str, Any] | None = None
    uploaded_at: datetime | None = None
    uploaded_by: FeedUploader | None = None
    caption: str | None = None
    like_count: int = 0
    comment_count: int = 0
    can_delete: bool = False

    @property
    def url_key(self) -> str:
        """Key the thumbnail URL map uses for this media."""
        return self.thumbnail_s3_key or self.id


class FeedComment(CamelModel):
    id: str
    content: str
    media_id: str


class _Activity(CamelModel):
    id: str
    timestamp: datetime
    event: FeedEvent | None = None
    user: FeedUser
    media: FeedMedia | None = None

    @model_validator(mode="before")
    @classmethod
    def _reject_comment_payload(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("comment") is not None:
            raise ValueError(f"{data.get('type')} activity cannot carry a comment payload")
        return data


class PhotoActivity(_Activity):
    type: Literal["photo"] = "photo"


class LikeActivity(_Activity):
    type: Literal["like"] = "like"


class CommentActivity(CamelModel):
    type: Literal["comment"] = "comment"
    id: str
    timestamp: datetime
    event: FeedEvent | None = None
    user: FeedUser
    comment: FeedComment
    media: FeedMedia | None = None


FeedItem = Annotated[
    Union[PhotoActivity, CommentActivity, LikeActivity],
    Field(discriminator="type"),
]

feed_item_adapter: TypeAdapter[FeedItem] = TypeAdapter(FeedItem)


class FeedPage(CamelModel):
    """Result of one page fetch."""

    success: bool = True
    items: list[FeedItem] = Field(default_factory=list)
    has_more: bool = False
    error: str | None = None


class MediaUrlsRequest(CamelModel):
    media_ids: list[str] = Field(default_factory=list)
    s3_keys: list[str] = Field(default_factory=list)


class MediaUrls(CamelModel):
    success: bool = True
    urls: dict[str, str] = Field(default_factory=dict)
    error: str | None = None


# Push channel messages

ACTIVITY_MESSAGE_TYPES = ("new_photo", "new_comment", "new_like")


class ActivityMessage(CamelModel):
    type: Literal["new_photo", "new_comment", "new_like"]
    item: FeedItem


class PhotoDeletedMessage(CamelModel):
    type: Literal["photo_deleted"] = "photo_deleted"
    media_id: str


PushMessage = Annotated[
    Union[ActivityMessage, PhotoDeletedMessage],
    Field(discriminator="type"),
]

push_message_adapter: TypeAdapter[PushMessage] = TypeAdapter(PushMessage)
