"""Streaming primitives shared by every adapter.

``StreamCallbacks`` is the sink an adapter drives while decoding a response,
``CancelToken`` is the one-shot stop signal created for each request, and
``parse_sse_line`` turns one line of a server-sent-event body into a JSON
payload.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def _noop(*args: Any) -> None:
    pass


@dataclass
class StreamCallbacks:
    """Receives the events of one streaming request.

    ``on_token`` is called for every text fragment in stream order, then exactly
    one of ``on_complete`` (with the full text) or ``on_error``.
    """

    on_token: Callable[[str], None] = _noop
    on_complete: Callable[[str], None] = _noop
    on_error: Callable[[Exception], None] = _noop


class CancelToken:
    """A one-shot cancellation signal for a single request.

    Cancelling is idempotent and cancelling a finished request does nothing.
    ``wait`` lets a stream race its pending read against the signal.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        """Returns once the token has been cancelled."""
        # Created on first use so the event belongs to the running loop.
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """Decodes one ``data: <json>`` line.

    Returns ``None`` for non-data lines, the ``[DONE]`` sentinel, and payloads
    that are not valid JSON objects.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if not payload or payload == DONE_SENTINEL:
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream chunk: %.80s", payload)
        return None
    return data if isinstance(data, dict) else None


def is_done_line(line: str) -> bool:
    return line.startswith(DATA_PREFIX) and line[len(DATA_PREFIX):].strip() == DONE_SENTINEL


def dig(data: Any, *path: Any) -> Any:
    """Follows ``path`` through nested dicts and lists, ``None`` when it breaks."""
    current = data
    for key in path:
        try:
            current = current[key]
        except (KeyError, IndexError, TypeError):
            return None
    return current
