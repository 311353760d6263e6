"""Activity feed push channel (server-sent events) and its publish hook."""
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from hcphotos.api.deps import get_feed_broadcaster, get_publisher, get_stream_viewer
from hcphotos.schemas.feed import push_message_adapter
from hcphotos.services.broadcaster import FeedBroadcaster

router = APIRouter(prefix="/feed", tags=["feed"])

STREAM_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Connection": "keep-alive",
    "X-Content-Type-Options": "nosniff",
    "Vary": "Cookie, Authorization",
}


@router.get("/stream")
async def feed_stream(
    viewer_id: str | None = Depends(get_stream_viewer),
    broadcaster: FeedBroadcaster = Depends(get_feed_broadcaster),
):
    subscriber = broadcaster.subscribe(viewer_id)
    return StreamingResponse(
        broadcaster.stream(subscriber),
        media_type="text/event-stream; charset=utf-8",
        headers=STREAM_HEADERS,
    )


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
async def publish_feed_event(
    payload: dict[str, Any] = Body(...),
    publisher: str = Depends(get_publisher),
    broadcaster: FeedBroadcaster = Depends(get_feed_broadcaster),
):
    """Fan a new_photo / new_comment / new_like / photo_deleted message out to open streams."""
    try:
        message = push_message_adapter.validate_python(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )
    delivered = await broadcaster.notify(message.model_dump(mode="json", by_alias=True))
    return {"success": True, "type": message.type, "delivered": delivered}
