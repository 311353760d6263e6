"""Server-sent events framing and push message parsing."""
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator

from pydantic import ValidationError

from hcphotos.schemas.feed import ACTIVITY_MESSAGE_TYPES, PushMessage, push_message_adapter

logger = logging.getLogger(__name__)


class SSEDecoder:
    """Incremental decoder for `text/event-stream` lines.

    Only the `data` field matters to the feed; `event`, `id` and `retry`
    are accepted and ignored. Comment lines (leading ':') carry the
    server's connected/heartbeat markers.
    """

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed_line(self, line: str) -> str | None:
        """Consume one line (without its terminator). Returns a payload when an event completes."""
        if line == "":
            if not self._data:
                return None
            payload = "\n".join(self._data)
            self._data = []
            return payload
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        return None


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    decoder = SSEDecoder()
    async for line in lines:
        payload = decoder.feed_line(line.rstrip("\r"))
        if payload is not None:
            yield payload


def format_sse(data: str) -> str:
    return "".join(f"data: {line}\n" for line in data.split("\n")) + "\n"


def format_comment(text: str) -> str:
    return f": {text}\n\n"


def parse_push_message(payload: str) -> PushMessage | None:
    """Parse one push payload. Unknown or malformed messages return None."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.error("[SSE] Message parse error: %s", e)
        return None
    if not isinstance(data, dict):
        logger.error("[SSE] Message parse error: expected an object, got %s", type(data).__name__)
        return None
    msg_type = data.get("type")
    if msg_type not in ACTIVITY_MESSAGE_TYPES and msg_type != "photo_deleted":
        logger.debug("[SSE] Ignoring message type %r", msg_type)
        return None
    if msg_type in ACTIVITY_MESSAGE_TYPES and not data.get("item"):
        return None
    if msg_type == "photo_deleted" and not data.get("mediaId"):
        return None
    try:
        return push_message_adapter.validate_python(data)
    except ValidationError as e:
        logger.error("[SSE] Message parse error: %s", e)
        return None
