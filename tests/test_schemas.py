import pytest
from pydantic import ValidationError

from hcphotos.schemas.feed import (
    ActivityMessage,
    CommentActivity,
    FeedPage,
    LikeActivity,
    PhotoActivity,
    PhotoDeletedMessage,
    feed_item_adapter,
    push_message_adapter,
)
from tests.factories import photo, wire

RAW_PHOTO = {
    "id": "photo-1",
    "type": "photo",
    "timestamp": "2026-01-01T12:00:00Z",
    "event": {"id": "ev1", "name": "Hack Night", "slug": "hack-night", "visibility": "public", "coverImage": "x"},
    "user": {"id": "u1", "email": "u1@hackclub.com", "slackId": None, "name": "Ada", "avatarS3Key": None},
    "media": {
        "id": "m1",
        "filename": "m1.jpg",
        "s3Url": "s3://photos/m1.jpg",
        "mimeType": "image/jpeg",
        "width": 100,
        "height": 50,
        "thumbnailS3Key": "thumbs/m1.webp",
        "exifData": {"Make": "Canon"},
        "uploadedAt": "2026-01-01T12:00:00Z",
        "uploadedBy": {"id": "u1", "name": "Ada"},
        "likeCount": 3,
        "commentCount": 1,
        "canDelete": True,
    },
}


def test_parses_camel_case_wire_format():
    item = feed_item_adapter.validate_python(RAW_PHOTO)
    assert isinstance(item, PhotoActivity)
    assert item.media.thumbnail_s3_key == "thumbs/m1.webp"
    assert item.media.can_delete is True
    assert item.media.url_key == "thumbs/m1.webp"
    assert item.event.visibility == "public"


def test_dump_uses_wire_names():
    data = wire(photo("p1"))
    assert data["type"] == "photo"
    assert "mimeType" in data["media"]
    assert "thumbnailS3Key" in data["media"]


def test_url_key_falls_back_to_media_id():
    assert photo("p1", media_id="m9").media.url_key == "m9"


def test_discriminates_on_type():
    like_item = feed_item_adapter.validate_python({**RAW_PHOTO, "type": "like", "id": "like-1"})
    assert isinstance(like_item, LikeActivity)
    comment_item = feed_item_adapter.validate_python(
        {**RAW_PHOTO, "type": "comment", "id": "comment-1", "comment": {"id": "c1", "content": "wow", "mediaId": "m1"}}
    )
    assert isinstance(comment_item, CommentActivity)
    assert comment_item.comment.media_id == "m1"


def test_comment_activity_requires_comment():
    with pytest.raises(ValidationError):
        feed_item_adapter.validate_python({**RAW_PHOTO, "type": "comment"})


def test_photo_activity_rejects_comment_payload():
    with pytest.raises(ValidationError):
        feed_item_adapter.validate_python({**RAW_PHOTO, "comment": {"id": "c1", "content": "x", "mediaId": "m1"}})


def test_unknown_item_type_rejected():
    with pytest.raises(ValidationError):
        feed_item_adapter.validate_python({**RAW_PHOTO, "type": "bulk_upload"})


def test_push_messages():
    msg = push_message_adapter.validate_python({"type": "new_photo", "item": RAW_PHOTO})
    assert isinstance(msg, ActivityMessage)
    deleted = push_message_adapter.validate_python({"type": "photo_deleted", "mediaId": "m1"})
    assert isinstance(deleted, PhotoDeletedMessage)
    assert deleted.media_id == "m1"


def test_feed_page_has_more_alias():
    parsed = FeedPage.model_validate({"success": True, "items": [RAW_PHOTO], "hasMore": True})
    assert parsed.has_more is True
    assert parsed.items[0].id == "photo-1"
