from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from helix_workbench.api_client import ApiClient
from helix_workbench.chat.events import StreamEvent
from helix_workbench.chat.sse import iter_stream_events


@dataclass
class ChatRequest:
    message: str
    conversation_id: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message}
        if self.conversation_id:
            payload["conversation_id"] = self.conversation_id
        if self.session_id:
            payload["session_id"] = self.session_id
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass(frozen=True)
class ChatResponse:
    conversation_id: str
    message: str


@runtime_checkable
class ChatTransport(Protocol):
    def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Yield decoded events for one user turn, in arrival order."""
        ...


@runtime_checkable
class BufferedChatTransport(ChatTransport, Protocol):
    async def send_message(self, request: ChatRequest) -> ChatResponse:
        """Return the whole reply for one user turn."""
        ...


class ChatClient:
    def __init__(self, api: ApiClient, base_url: str):
        self._api = api
        self._base_url = base_url.rstrip("/")

    async def send_message(self, request: ChatRequest) -> ChatResponse:
        """Buffered endpoint: the whole reply in one response."""
        payload = await self._api.post_json(f"{self._base_url}/api/v1/chat", request.to_payload()) or {}
        return ChatResponse(
            conversation_id=str(payload.get("conversation_id", "")),
            message=str(payload.get("message", "")),
        )

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        async with self._api.stream(
            "POST",
            f"{self._base_url}/api/v1/chat/stream",
            json=request.to_payload(),
            accept="text/event-stream",
        ) as response:
            async for event in iter_stream_events(response.aiter_lines()):
                yield event
