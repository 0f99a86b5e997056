from helix_workbench.chat.client import (
    BufferedChatTransport,
    ChatClient,
    ChatRequest,
    ChatResponse,
    ChatTransport,
)
from helix_workbench.chat.engine import (
    ConversationEngine,
    StreamAborted,
    StreamCallbacks,
    StreamInProgressError,
    StreamOutcome,
    StreamState,
)
from helix_workbench.chat.sse import StreamError
from helix_workbench.chat.transcript import (
    AssistantMessage,
    LiteratureResultMessage,
    QueryResultMessage,
    Transcript,
    TranscriptError,
    UserMessage,
)

__all__ = [
    "AssistantMessage",
    "BufferedChatTransport",
    "ChatClient",
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "ConversationEngine",
    "LiteratureResultMessage",
    "QueryResultMessage",
    "StreamAborted",
    "StreamCallbacks",
    "StreamError",
    "StreamInProgressError",
    "StreamOutcome",
    "StreamState",
    "Transcript",
    "TranscriptError",
    "UserMessage",
]
