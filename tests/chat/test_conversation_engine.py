import asyncio
import unittest

from helix_workbench.chat.client import ChatRequest, ChatResponse
from helix_workbench.chat.engine import (
    ConversationEngine,
    StreamAborted,
    StreamCallbacks,
    StreamInProgressError,
    StreamState,
)
from helix_workbench.chat.events import (
    ConversationStarted,
    LiteratureResult,
    LiteratureSearching,
    QueryingStarted,
    QueryResult,
    RoundComplete,
    Token,
)
from helix_workbench.chat.sse import StreamError
from helix_workbench.chat.transcript import (
    AssistantMessage,
    LiteratureResultMessage,
    QueryResultMessage,
    UserMessage,
)


class _ScriptedTransport:
    """Yields a fixed list of events per turn; an exception in the script is raised in place."""

    def __init__(self, *turns: list):
        self._turns = list(turns)
        self.requests: list[ChatRequest] = []

    async def stream_chat(self, request: ChatRequest):
        self.requests.append(request)
        script = self._turns.pop(0)
        for item in script:
            await asyncio.sleep(0)
            if isinstance(item, BaseException):
                raise item
            yield item


class _HangingTransport:
    """Yields the given events and then waits until cancelled."""

    def __init__(self, *events):
        self._events = events
        self.started = asyncio.Event()

    async def stream_chat(self, request: ChatRequest):
        for event in self._events:
            yield event
        self.started.set()
        await asyncio.Event().wait()


class ConversationEngineTests(unittest.TestCase):
    def test_tokens_are_appended_in_order(self) -> None:
        transport = _ScriptedTransport([Token("Hel"), Token("lo")])
        engine = ConversationEngine(transport, session_id="s1")
        tokens: list[str] = []

        outcome = asyncio.run(engine.submit("hi", callbacks=StreamCallbacks(on_token=tokens.append)))

        self.assertTrue(outcome.succeeded)
        self.assertEqual(["Hel", "lo"], tokens)
        self.assertEqual("Hello", outcome.text)
        self.assertIs(StreamState.COMPLETED, engine.state)
        self.assertEqual(1, outcome.rounds)

        messages = engine.transcript.messages
        self.assertIsInstance(messages[0], UserMessage)
        self.assertEqual("hi", messages[0].content)
        self.assertIsInstance(messages[1], AssistantMessage)
        self.assertFalse(messages[1].is_streaming)

    def test_tool_results_split_assistant_messages(self) -> None:
        transport = _ScriptedTransport([
            Token("Let me check."),
            QueryingStarted(),
            QueryResult(sql="SELECT gene FROM variants", data=[{"gene": "SCN1A"}], rows_returned=1),
            Token("Found SCN1A."),
            RoundComplete(1),
            LiteratureSearching(),
            LiteratureResult(results=[{"pmid": "1"}], total_results=1),
            RoundComplete(2),
        ])
        engine = ConversationEngine(transport)
        rounds: list[int] = []

        outcome = asyncio.run(engine.submit("genes?", callbacks=StreamCallbacks(on_round_complete=rounds.append)))

        kinds = [type(m) for m in engine.transcript.messages]
        self.assertEqual(
            [UserMessage, AssistantMessage, QueryResultMessage, AssistantMessage, LiteratureResultMessage],
            kinds,
        )
        self.assertEqual("Let me check.", engine.transcript.messages[1].content)
        self.assertEqual("Found SCN1A.", engine.transcript.messages[3].content)
        self.assertTrue(all(not m.is_streaming for m in engine.transcript.messages if isinstance(m, AssistantMessage)))
        self.assertEqual([1, 2], rounds)
        self.assertEqual(2, outcome.rounds)

    def test_tool_result_without_preceding_text_creates_no_empty_message(self) -> None:
        transport = _ScriptedTransport([
            QueryingStarted(),
            QueryResult(sql="SELECT 1"),
        ])
        engine = ConversationEngine(transport)

        asyncio.run(engine.submit("count"))

        self.assertEqual([UserMessage, QueryResultMessage], [type(m) for m in engine.transcript.messages])

    def test_token_during_tool_phase_closes_phase_and_keeps_text(self) -> None:
        transport = _ScriptedTransport([
            LiteratureSearching(),
            Token("No papers yet. "),
            LiteratureResult(results=[], total_results=0),
            Token("done"),
        ])
        engine = ConversationEngine(transport)

        outcome = asyncio.run(engine.submit("papers?"))

        self.assertEqual("No papers yet. done", outcome.text)
        self.assertEqual(
            [UserMessage, AssistantMessage, LiteratureResultMessage, AssistantMessage],
            [type(m) for m in engine.transcript.messages],
        )

    def test_narration_survives_query_result_that_never_arrives(self) -> None:
        # e.g. the query_result frame was dropped as undecodable
        transport = _ScriptedTransport([
            QueryingStarted(),
            Token("The query found one row"),
            RoundComplete(1),
        ])
        engine = ConversationEngine(transport)

        outcome = asyncio.run(engine.submit("how many?"))

        self.assertTrue(outcome.succeeded)
        self.assertEqual("The query found one row", outcome.text)
        self.assertEqual(1, outcome.rounds)

    def test_stream_ending_without_round_marker_finalizes_message(self) -> None:
        transport = _ScriptedTransport([Token("a"), Token("b"), Token("c")])
        engine = ConversationEngine(transport)

        asyncio.run(engine.submit("abc?"))

        last = engine.transcript.messages[-1]
        self.assertEqual("abc", last.content)
        self.assertFalse(last.is_streaming)
        self.assertIsNone(engine.transcript.streaming_message)

    def test_transport_failure_keeps_partial_text(self) -> None:
        transport = _ScriptedTransport([Token("partial"), StreamError("[ERROR: upstream]")])
        engine = ConversationEngine(transport)
        errors: list[Exception] = []
        completed: list[object] = []

        outcome = asyncio.run(engine.submit(
            "go",
            callbacks=StreamCallbacks(on_error=errors.append, on_complete=completed.append),
        ))

        self.assertIs(StreamState.FAILED, outcome.state)
        self.assertIsInstance(outcome.error, StreamError)
        self.assertEqual([outcome.error], errors)
        self.assertEqual([], completed)
        self.assertEqual("partial", outcome.text)
        self.assertFalse(engine.transcript.messages[-1].is_streaming)

    def test_conversation_id_is_assigned_and_reused(self) -> None:
        transport = _ScriptedTransport(
            [ConversationStarted("c1"), Token("first")],
            [ConversationStarted("c1"), Token("second")],
        )
        engine = ConversationEngine(transport, session_id="s1")
        started: list[str] = []

        async def scenario() -> None:
            await engine.submit("one", callbacks=StreamCallbacks(on_conversation_started=started.append))
            await engine.submit("two")

        asyncio.run(scenario())

        self.assertEqual(["c1"], started)
        self.assertEqual("c1", engine.transcript.id)
        self.assertIsNone(transport.requests[0].conversation_id)
        self.assertEqual("c1", transport.requests[1].conversation_id)
        self.assertEqual("s1", transport.requests[1].session_id)

    def test_mismatched_conversation_id_is_ignored(self) -> None:
        transport = _ScriptedTransport([ConversationStarted("c1")], [ConversationStarted("c2"), Token("ok")])
        engine = ConversationEngine(transport)

        async def scenario():
            await engine.submit("one")
            return await engine.submit("two")

        outcome = asyncio.run(scenario())

        self.assertTrue(outcome.succeeded)
        self.assertEqual("c1", engine.transcript.id)

    def test_submit_while_streaming_is_rejected(self) -> None:
        transport = _HangingTransport(Token("thinking"))
        engine = ConversationEngine(transport)

        async def scenario() -> None:
            turn = asyncio.ensure_future(engine.submit("first"))
            await transport.started.wait()
            self.assertTrue(engine.is_streaming)
            with self.assertRaises(StreamInProgressError):
                await engine.submit("second")
            await engine.abort()
            await turn

        asyncio.run(scenario())

        user_messages = [m for m in engine.transcript.messages if isinstance(m, UserMessage)]
        self.assertEqual(["first"], [m.content for m in user_messages])

    def test_abort_fails_turn_and_keeps_partial_text(self) -> None:
        transport = _HangingTransport(Token("par"), Token("tial"))
        engine = ConversationEngine(transport)
        errors: list[Exception] = []

        async def scenario():
            turn = asyncio.ensure_future(engine.submit("go", callbacks=StreamCallbacks(on_error=errors.append)))
            await transport.started.wait()
            await engine.abort()
            self.assertFalse(engine.is_streaming)
            return await turn

        outcome = asyncio.run(scenario())

        self.assertIs(StreamState.FAILED, outcome.state)
        self.assertIsInstance(outcome.error, StreamAborted)
        self.assertEqual(1, len(errors))
        self.assertEqual("partial", outcome.text)
        self.assertIsNone(engine.transcript.streaming_message)

    def test_abort_after_stream_drained_still_ends_turn(self) -> None:
        transport = _ScriptedTransport([Token("done")])
        engine = ConversationEngine(transport, session_id="s1")

        async def scenario():
            turn = asyncio.ensure_future(engine.submit("hi"))
            # Step until the stream task has drained; submit may not have resumed yet.
            while engine.is_streaming and (engine._stream_task is None or not engine._stream_task.done()):
                await asyncio.sleep(0)
            await engine.abort()
            self.assertFalse(engine.is_streaming)
            engine.reset(session_id="s2")
            return await turn

        outcome = asyncio.run(scenario())

        self.assertTrue(outcome.succeeded)
        self.assertEqual("s2", engine.transcript.session_id)
        self.assertEqual(0, len(engine.transcript))

    def test_abort_when_idle_is_a_no_op(self) -> None:
        engine = ConversationEngine(_ScriptedTransport())

        asyncio.run(engine.abort())

        self.assertIs(StreamState.IDLE, engine.state)

    def test_engine_accepts_new_turn_after_failure(self) -> None:
        transport = _ScriptedTransport([ConnectionError("reset")], [Token("recovered")])
        engine = ConversationEngine(transport)

        async def scenario():
            await engine.submit("one")
            return await engine.submit("two")

        outcome = asyncio.run(scenario())

        self.assertTrue(outcome.succeeded)
        self.assertEqual("recovered", outcome.text)

    def test_send_buffers_whole_turn(self) -> None:
        transport = _ScriptedTransport([Token("buffered "), Token("reply")])
        engine = ConversationEngine(transport)

        outcome = asyncio.run(engine.send("hello", metadata={"view": "analysis"}))

        self.assertEqual("buffered reply", outcome.text)
        self.assertEqual({"view": "analysis"}, transport.requests[0].metadata)

    def test_send_uses_buffered_endpoint_when_available(self) -> None:
        class _BufferedTransport(_ScriptedTransport):
            async def send_message(self, request: ChatRequest) -> ChatResponse:
                self.requests.append(request)
                await asyncio.sleep(0)
                return ChatResponse(conversation_id="c9", message="SCN1A is tier 1.")

        transport = _BufferedTransport()
        engine = ConversationEngine(transport, session_id="s1")

        outcome = asyncio.run(engine.send("which genes?", metadata={"view": "analysis"}))

        self.assertTrue(outcome.succeeded)
        self.assertEqual("SCN1A is tier 1.", outcome.text)
        self.assertEqual("c9", engine.transcript.id)
        self.assertEqual(1, outcome.rounds)
        self.assertEqual([UserMessage, AssistantMessage], [type(m) for m in engine.transcript.messages])
        self.assertEqual({"view": "analysis"}, transport.requests[0].metadata)
        self.assertEqual("s1", transport.requests[0].session_id)

    def test_buffered_send_failure_fails_turn(self) -> None:
        class _FailingTransport(_ScriptedTransport):
            async def send_message(self, request: ChatRequest) -> ChatResponse:
                raise ConnectionError("refused")

        engine = ConversationEngine(_FailingTransport())

        outcome = asyncio.run(engine.send("hello"))

        self.assertIs(StreamState.FAILED, outcome.state)
        self.assertIsInstance(outcome.error, ConnectionError)
        self.assertFalse(engine.is_streaming)

    def test_reset_starts_new_transcript(self) -> None:
        transport = _ScriptedTransport([ConversationStarted("c1"), Token("x")])
        engine = ConversationEngine(transport, session_id="s1")
        asyncio.run(engine.submit("one"))

        transcript = engine.reset(session_id="s2")

        self.assertTrue(transcript.is_provisional)
        self.assertEqual("s2", transcript.session_id)
        self.assertEqual(0, len(transcript))
        self.assertIs(StreamState.IDLE, engine.state)


if __name__ == "__main__":
    unittest.main()
