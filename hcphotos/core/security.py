"""Security utilities: JWT access token decoding for feed stream viewers."""
from jose import JWTError, jwt

from hcphotos.core.config import settings


def decode_token(token: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None


def viewer_id_from_token(token: str) -> str | None:
    """Return the `sub` of a valid access token, or None."""
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


def publisher_from_token(token: str) -> str | None:
    """Return the `sub` of a valid publisher token (the web app publishing feed activity), or None."""
    payload = decode_token(token)
    if not payload or payload.get("type") != "publisher":
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None
