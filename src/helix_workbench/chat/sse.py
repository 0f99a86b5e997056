from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from helix_workbench.chat.events import TOKEN_EVENT, StreamEvent, decode_event

DONE_SENTINEL = "[DONE]"
ERROR_PREFIX = "[ERROR:"


class StreamError(Exception):
    """The server reported a failure inside the event stream."""


@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str


def _field(line: str) -> tuple[str, str]:
    name, _, value = line.partition(":")
    if value.startswith(" "):
        value = value[1:]
    return name, value


async def iter_sse(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    """Frame text lines into server-sent events.

    A blank line dispatches the pending event; a trailing event without the
    blank line is dispatched at end of input.
    """
    event_name = TOKEN_EVENT
    data_lines: list[str] = []

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data_lines:
                yield ServerSentEvent(event=event_name, data="\n".join(data_lines))
            event_name = TOKEN_EVENT
            data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, value = _field(line)
        if name == "event":
            event_name = value.strip() or TOKEN_EVENT
        elif name == "data":
            data_lines.append(value)
        # id: and retry: carry nothing this client uses

    if data_lines:
        yield ServerSentEvent(event=event_name, data="\n".join(data_lines))


async def iter_stream_events(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    async for sse in iter_sse(lines):
        if sse.data == DONE_SENTINEL:
            return
        if sse.data.startswith(ERROR_PREFIX):
            raise StreamError(sse.data)
        event = decode_event(sse.event, sse.data)
        if event is not None:
            yield event
