from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def _new_id() -> str:
    return uuid4().hex


class TranscriptError(Exception):
    """A transcript operation was called out of order."""


@dataclass
class UserMessage:
    content: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    role: str = field(default="user", init=False)


@dataclass
class AssistantMessage:
    content: str = ""
    is_streaming: bool = True
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    role: str = field(default="assistant", init=False)


@dataclass(frozen=True)
class QueryResultMessage:
    sql: str
    data: list[dict]
    rows_returned: int
    execution_time_ms: float
    summary: str | None = None
    visualization: dict | None = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    role: str = field(default="tool", init=False)


@dataclass(frozen=True)
class LiteratureResultMessage:
    results: list[dict]
    total_results: int
    query: str | None = None
    search_time_ms: float | None = None
    summary: str | None = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    role: str = field(default="tool", init=False)


Message = UserMessage | AssistantMessage | QueryResultMessage | LiteratureResultMessage
ToolResultMessage = QueryResultMessage | LiteratureResultMessage


class Transcript:
    """Ordered, append-only record of one conversation.

    The conversation id stays ``None`` until the server assigns one. At most one
    assistant message is open (streaming) at a time; once finalized it is never
    written to again.
    """

    def __init__(self, *, session_id: str | None = None, conversation_id: str | None = None):
        self._id = conversation_id
        self._session_id = session_id
        self._messages: list[Message] = []
        self._open: AssistantMessage | None = None
        self._created_at = utc_now()
        self._updated_at = self._created_at

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def is_provisional(self) -> bool:
        return self._id is None

    @property
    def created_at(self) -> str:
        return self._created_at

    @property
    def updated_at(self) -> str:
        return self._updated_at

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def streaming_message(self) -> AssistantMessage | None:
        return self._open

    def __len__(self) -> int:
        return len(self._messages)

    def assign_conversation_id(self, conversation_id: str) -> None:
        if self._id == conversation_id:
            return
        if self._id is not None:
            raise TranscriptError(
                f"conversation already identified as {self._id}, refusing {conversation_id}"
            )
        self._id = conversation_id
        self._touch()

    def append_user_message(self, content: str) -> UserMessage:
        message = UserMessage(content=content)
        self._messages.append(message)
        self._touch()
        return message

    def begin_assistant_message(self) -> AssistantMessage:
        if self._open is not None:
            raise TranscriptError(f"assistant message {self._open.id} is still streaming")
        message = AssistantMessage()
        self._messages.append(message)
        self._open = message
        self._touch()
        return message

    def append_token(self, handle: AssistantMessage, token: str) -> None:
        self._require_open(handle, "append to")
        handle.content += token
        self._touch()

    def finalize_assistant_message(self, handle: AssistantMessage) -> None:
        self._require_open(handle, "finalize")
        handle.is_streaming = False
        self._open = None
        self._touch()

    def append_tool_result(self, message: ToolResultMessage) -> None:
        if self._open is not None:
            raise TranscriptError(
                f"cannot append a tool result while assistant message {self._open.id} is streaming"
            )
        self._messages.append(message)
        self._touch()

    def _require_open(self, handle: AssistantMessage, action: str) -> None:
        if handle is not self._open:
            raise TranscriptError(f"cannot {action} assistant message {handle.id}: it is not the open message")

    def _touch(self) -> None:
        self._updated_at = utc_now()
