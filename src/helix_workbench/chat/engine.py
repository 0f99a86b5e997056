from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, assert_never

from loguru import logger

from helix_workbench.chat.client import BufferedChatTransport, ChatRequest, ChatTransport
from helix_workbench.chat.events import (
    ConversationStarted,
    LiteratureResult,
    LiteratureSearching,
    QueryingStarted,
    QueryResult,
    RoundComplete,
    StreamEvent,
    Token,
)
from helix_workbench.chat.transcript import (
    AssistantMessage,
    LiteratureResultMessage,
    Message,
    QueryResultMessage,
    Transcript,
)


class StreamState(Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class StreamInProgressError(Exception):
    """A message was submitted while the previous response is still streaming."""


class StreamAborted(Exception):
    """The in-flight stream was aborted by the caller."""


class _ToolPhase(Enum):
    QUERY = "database query"
    LITERATURE = "literature search"


@dataclass
class StreamCallbacks:
    on_conversation_started: Callable[[str], None] | None = None
    on_token: Callable[[str], None] | None = None
    on_querying_started: Callable[[], None] | None = None
    on_query_result: Callable[[QueryResultMessage], None] | None = None
    on_literature_searching: Callable[[], None] | None = None
    on_literature_result: Callable[[LiteratureResultMessage], None] | None = None
    on_round_complete: Callable[[int], None] | None = None
    on_complete: Callable[[StreamOutcome], None] | None = None
    on_error: Callable[[Exception], None] | None = None


@dataclass(frozen=True)
class StreamOutcome:
    state: StreamState
    conversation_id: str | None
    messages: list[Message] = field(default_factory=list)
    rounds: int = 0
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is StreamState.COMPLETED

    @property
    def text(self) -> str:
        return "".join(m.content for m in self.messages if isinstance(m, AssistantMessage))


def _emit(callback: Callable[..., None] | None, *args: Any) -> None:
    if callback is not None:
        callback(*args)


class ConversationEngine:
    """Runs one streamed user turn at a time against a transcript.

    Events are applied in the order the transport yields them. Each turn ends
    exactly once, as COMPLETED or FAILED; whichever assistant message is still
    open at that point is finalized so partial output survives.

    Submitting while a turn is streaming raises StreamInProgressError. Call
    ``abort()`` first to replace an in-flight turn.
    """

    def __init__(
        self,
        transport: ChatTransport,
        *,
        session_id: str | None = None,
        transcript: Transcript | None = None,
    ) -> None:
        self._transport = transport
        self._transcript = transcript or Transcript(session_id=session_id)
        self._state = StreamState.IDLE
        self._stream_task: asyncio.Task[None] | None = None
        self._turn_done: asyncio.Event | None = None
        self._abort_requested = False
        self._tool_phase: _ToolPhase | None = None
        self._rounds = 0
        self._round_active = False

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is StreamState.STREAMING

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    def reset(self, *, session_id: str | None = None) -> Transcript:
        if self.is_streaming:
            raise StreamInProgressError("cannot start a new conversation while a response is streaming")
        self._transcript = Transcript(session_id=session_id)
        self._state = StreamState.IDLE
        return self._transcript

    async def send(self, message: str, *, metadata: dict[str, Any] | None = None) -> StreamOutcome:
        """Buffered mode: one request, one complete reply, no intermediate callbacks.

        Uses the transport's buffered endpoint when it has one and otherwise
        runs a streamed turn. Either way the turn follows the same rules as
        ``submit``.
        """
        if isinstance(self._transport, BufferedChatTransport):
            return await self._run_turn(message, metadata, StreamCallbacks(), self._receive)
        return await self.submit(message, metadata=metadata)

    async def submit(
        self,
        message: str,
        *,
        metadata: dict[str, Any] | None = None,
        callbacks: StreamCallbacks | None = None,
    ) -> StreamOutcome:
        return await self._run_turn(message, metadata, callbacks or StreamCallbacks(), self._consume)

    async def _run_turn(
        self,
        message: str,
        metadata: dict[str, Any] | None,
        callbacks: StreamCallbacks,
        exchange: Callable[[ChatRequest, Transcript, StreamCallbacks], Awaitable[None]],
    ) -> StreamOutcome:
        if self.is_streaming:
            raise StreamInProgressError("a response is still streaming; abort it before sending another message")

        transcript = self._transcript
        first_index = len(transcript)
        log = logger.bind(session_id=transcript.session_id or "-")

        self._state = StreamState.STREAMING
        self._turn_done = asyncio.Event()
        self._abort_requested = False
        self._tool_phase = None
        self._rounds = 0
        self._round_active = False

        error: Exception | None = None
        try:
            transcript.append_user_message(message)
            request = ChatRequest(
                message=message,
                conversation_id=transcript.id,
                session_id=transcript.session_id,
                metadata=metadata,
            )
            self._stream_task = asyncio.ensure_future(exchange(request, transcript, callbacks))
            await self._stream_task
        except asyncio.CancelledError:
            if not self._abort_requested:
                self._finish(transcript, StreamState.FAILED)
                raise
            error = StreamAborted("response stream aborted")
        except Exception as ex:
            error = ex
        finally:
            self._stream_task = None

        if error is None:
            self._finish(transcript, StreamState.COMPLETED)
        else:
            self._finish(transcript, StreamState.FAILED)
            log.error(f"Conversation stream failed: {type(error).__name__}: {error}")

        outcome = StreamOutcome(
            state=self._state,
            conversation_id=transcript.id,
            messages=transcript.messages[first_index:],
            rounds=self._rounds,
            error=error,
        )
        if error is None:
            log.info(f"Conversation turn completed ({outcome.rounds} round(s), conversation={outcome.conversation_id})")
            _emit(callbacks.on_complete, outcome)
        else:
            _emit(callbacks.on_error, error)
        return outcome

    async def abort(self) -> None:
        """Cancel the in-flight stream and wait until its turn has ended.

        The stream task may already be done while ``submit`` has not yet
        resumed to end the turn; in that case there is nothing to cancel but
        the turn is still awaited, so the engine is never left STREAMING.
        """
        if not self.is_streaming:
            return
        task = self._stream_task
        turn_done = self._turn_done
        if task is not None and not task.done():
            self._abort_requested = True
            task.cancel()
        if turn_done is not None:
            await turn_done.wait()

    async def _consume(self, request: ChatRequest, transcript: Transcript, callbacks: StreamCallbacks) -> None:
        async for event in self._transport.stream_chat(request):
            self._apply(event, transcript, callbacks)

    async def _receive(self, request: ChatRequest, transcript: Transcript, callbacks: StreamCallbacks) -> None:
        response = await self._transport.send_message(request)
        if response.conversation_id:
            self._apply(ConversationStarted(response.conversation_id), transcript, callbacks)
        if response.message:
            self._apply(Token(response.message), transcript, callbacks)

    def _apply(self, event: StreamEvent, transcript: Transcript, callbacks: StreamCallbacks) -> None:
        match event:
            case ConversationStarted(conversation_id=conversation_id):
                if transcript.id is not None and transcript.id != conversation_id:
                    logger.warning(
                        f"Ignoring conversation_started for {conversation_id}; "
                        f"conversation is already {transcript.id}"
                    )
                    return
                transcript.assign_conversation_id(conversation_id)
                _emit(callbacks.on_conversation_started, conversation_id)

            case Token(text=text):
                if self._tool_phase is not None:
                    # The phase's result never arrived (or was undecodable); keep the narration.
                    logger.warning(f"Text received during {self._tool_phase.value}; closing the phase without a result")
                    self._tool_phase = None
                handle = transcript.streaming_message or transcript.begin_assistant_message()
                transcript.append_token(handle, text)
                self._round_active = True
                _emit(callbacks.on_token, text)

            case QueryingStarted():
                self._enter_tool_phase(_ToolPhase.QUERY, transcript)
                _emit(callbacks.on_querying_started)

            case QueryResult():
                self._leave_tool_phase(_ToolPhase.QUERY, transcript)
                query_message = QueryResultMessage(
                    sql=event.sql,
                    data=event.data,
                    rows_returned=event.rows_returned,
                    execution_time_ms=event.execution_time_ms,
                    summary=event.summary,
                    visualization=event.visualization,
                )
                transcript.append_tool_result(query_message)
                _emit(callbacks.on_query_result, query_message)

            case LiteratureSearching():
                self._enter_tool_phase(_ToolPhase.LITERATURE, transcript)
                _emit(callbacks.on_literature_searching)

            case LiteratureResult():
                self._leave_tool_phase(_ToolPhase.LITERATURE, transcript)
                literature_message = LiteratureResultMessage(
                    results=event.results,
                    total_results=event.total_results,
                    query=event.query,
                    search_time_ms=event.search_time_ms,
                    summary=event.summary,
                )
                transcript.append_tool_result(literature_message)
                _emit(callbacks.on_literature_result, literature_message)

            case RoundComplete(round=number):
                if self._tool_phase is not None:
                    logger.warning(f"Round ended with {self._tool_phase.value} still pending")
                    self._tool_phase = None
                self._finalize_open(transcript)
                self._rounds += 1
                self._round_active = False
                _emit(callbacks.on_round_complete, number if number is not None else self._rounds)

            case _:
                assert_never(event)

    def _enter_tool_phase(self, phase: _ToolPhase, transcript: Transcript) -> None:
        if self._tool_phase is not None and self._tool_phase is not phase:
            logger.warning(f"{phase.value} started while {self._tool_phase.value} is pending")
        self._finalize_open(transcript)
        self._tool_phase = phase
        self._round_active = True

    def _leave_tool_phase(self, phase: _ToolPhase, transcript: Transcript) -> None:
        if self._tool_phase is not phase:
            logger.warning(f"Received {phase.value} result without a matching start event")
        self._finalize_open(transcript)
        self._tool_phase = None
        self._round_active = True

    def _finalize_open(self, transcript: Transcript) -> None:
        handle = transcript.streaming_message
        if handle is not None:
            transcript.finalize_assistant_message(handle)

    def _finish(self, transcript: Transcript, state: StreamState) -> None:
        if self._tool_phase is not None:
            logger.warning(f"Stream ended with {self._tool_phase.value} still pending")
            self._tool_phase = None
        self._finalize_open(transcript)
        if self._round_active:
            self._rounds += 1
            self._round_active = False
        self._state = state
        if self._turn_done is not None:
            self._turn_done.set()
