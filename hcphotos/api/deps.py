"""API dependencies: stream viewer identity, publisher identity, broadcaster."""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hcphotos.core.security import publisher_from_token, viewer_id_from_token
from hcphotos.services.broadcaster import FeedBroadcaster, get_broadcaster

security = HTTPBearer(auto_error=False)


def get_feed_broadcaster() -> FeedBroadcaster:
    return get_broadcaster()


async def get_viewer_id_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str | None:
    """Anonymous viewers are allowed; a token that is present must be valid."""
    if not credentials:
        return None
    viewer_id = viewer_id_from_token(credentials.credentials)
    if viewer_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return viewer_id


async def get_stream_viewer(
    viewer_id: str | None = Depends(get_viewer_id_optional),
    broadcaster: FeedBroadcaster = Depends(get_feed_broadcaster),
) -> str | None:
    if await broadcaster.is_banned(viewer_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return viewer_id


async def get_publisher(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    publisher = publisher_from_token(credentials.credentials)
    if publisher is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid publisher token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return publisher
