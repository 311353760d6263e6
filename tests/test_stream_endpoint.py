import asyncio
import json

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient
from jose import jwt

from hcphotos.api.deps import get_feed_broadcaster, get_viewer_id_optional
from hcphotos.api.v1.endpoints.feed import feed_stream
from hcphotos.core.config import settings
from hcphotos.main import app
from hcphotos.services.broadcaster import FeedBroadcaster, broadcast_photo_deleted
from tests.factories import photo, wire

client = TestClient(app)


def make_token(payload: dict) -> str:
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_root_and_health():
    assert client.get("/").json()["stream"] == "/api/v1/feed/stream"
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"


def test_stream_rejects_invalid_token():
    response = client.get("/api/v1/feed/stream", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid access token"


def test_viewer_identity_from_token():
    assert asyncio.run(get_viewer_id_optional(None)) is None
    token = make_token({"sub": "u1", "type": "access"})
    assert asyncio.run(get_viewer_id_optional(bearer(token))) == "u1"


def test_refresh_token_is_not_a_viewer():
    token = make_token({"sub": "u1", "type": "refresh"})
    with pytest.raises(HTTPException) as exc:
        asyncio.run(get_viewer_id_optional(bearer(token)))
    assert exc.value.status_code == 401


def test_stream_response_headers_and_frames():
    async def scenario():
        broadcaster = FeedBroadcaster(heartbeat_seconds=60)
        response = await feed_stream(viewer_id="u1", broadcaster=broadcaster)
        body = response.body_iterator
        first = await body.__anext__()
        subscribed = broadcaster.subscriber_count
        await broadcast_photo_deleted(broadcaster, "m9")
        second = await body.__anext__()
        await body.aclose()
        return response, first, second, subscribed, broadcaster.subscriber_count

    response, first, second, subscribed, remaining = asyncio.run(scenario())
    assert response.media_type == "text/event-stream; charset=utf-8"
    assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, max-age=0"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["vary"] == "Cookie, Authorization"
    assert first == ": connected\n\n"
    assert second == 'data: {"type": "photo_deleted", "mediaId": "m9"}\n\n'
    assert subscribed == 1
    assert remaining == 0


def override_broadcaster(broadcaster):
    app.dependency_overrides[get_feed_broadcaster] = lambda: broadcaster


def test_published_event_reaches_open_stream():
    broadcaster = FeedBroadcaster(heartbeat_seconds=60)
    subscriber = broadcaster.subscribe(None)
    override_broadcaster(broadcaster)
    try:
        response = client.post(
            "/api/v1/feed/events",
            json={"type": "new_photo", "item": wire(photo("p1"))},
            headers={"Authorization": f"Bearer {make_token({'sub': 'web', 'type': 'publisher'})}"},
        )
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 202
    assert response.json() == {"success": True, "type": "new_photo", "delivered": 1}

    async def read_frames():
        frames = broadcaster.stream(subscriber)
        connected = await frames.__anext__()
        data = await frames.__anext__()
        await frames.aclose()
        return connected, data

    connected, data = asyncio.run(read_frames())
    assert connected == ": connected\n\n"
    assert data.startswith("data: ")
    message = json.loads(data[len("data: "):])
    assert message["type"] == "new_photo"
    assert message["item"]["id"] == "p1"


def test_publish_requires_publisher_token():
    body = {"type": "photo_deleted", "mediaId": "m1"}
    assert client.post("/api/v1/feed/events", json=body).status_code == 401
    viewer = make_token({"sub": "u1", "type": "access"})
    response = client.post("/api/v1/feed/events", json=body, headers={"Authorization": f"Bearer {viewer}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid publisher token"


def test_publish_rejects_unknown_messages():
    token = make_token({"sub": "web", "type": "publisher"})
    response = client.post(
        "/api/v1/feed/events",
        json={"type": "bulk_upload", "item": {"id": "bulk-1"}},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 422


def test_banned_viewer_is_refused():
    async def banned(viewer_id):
        return viewer_id == "u-banned"

    broadcaster = FeedBroadcaster(is_banned=banned)
    override_broadcaster(broadcaster)
    try:
        token = make_token({"sub": "u-banned", "type": "access"})
        response = client.get("/api/v1/feed/stream", headers={"Authorization": f"Bearer {token}"})
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 403
    assert response.json()["detail"] == "Forbidden"
    assert broadcaster.subscriber_count == 0
