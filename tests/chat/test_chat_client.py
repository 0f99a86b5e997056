import asyncio
import json
import unittest

import httpx

from helix_workbench.api_client import ApiClient, ApiError
from helix_workbench.chat.client import BufferedChatTransport, ChatClient, ChatRequest, ChatTransport
from helix_workbench.chat.events import ConversationStarted, Token


class ChatClientTests(unittest.TestCase):
    def test_stream_chat_posts_payload_and_decodes_events(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = (
                "event: conversation_started\n"
                'data: {"conversation_id": "c9"}\n'
                "\n"
                "data: Hello\n"
                "\n"
                "data: [DONE]\n"
                "\n"
            )
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

        api = ApiClient(token="tok", max_attempts=1, transport=httpx.MockTransport(handler))
        client = ChatClient(api, "http://ai/")

        async def scenario():
            try:
                request = ChatRequest(message="hi", session_id="s1")
                return [event async for event in client.stream_chat(request)]
            finally:
                await api.aclose()

        events = asyncio.run(scenario())

        self.assertEqual([ConversationStarted("c9"), Token("Hello")], events)
        self.assertEqual("/api/v1/chat/stream", seen[0].url.path)
        self.assertEqual("text/event-stream", seen[0].headers["accept"])
        self.assertEqual("Bearer tok", seen[0].headers["authorization"])
        self.assertEqual({"message": "hi", "session_id": "s1"}, json.loads(seen[0].content))

    def test_stream_chat_http_error_raises_before_events(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"detail": "AI service warming up"})

        api = ApiClient(max_attempts=1, transport=httpx.MockTransport(handler))
        client = ChatClient(api, "http://ai")

        async def scenario():
            try:
                return [event async for event in client.stream_chat(ChatRequest(message="hi"))]
            finally:
                await api.aclose()

        with self.assertRaises(ApiError) as ctx:
            asyncio.run(scenario())
        self.assertEqual(503, ctx.exception.status_code)
        self.assertEqual("AI service warming up", str(ctx.exception))

    def test_send_message_returns_buffered_reply(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual("/api/v1/chat", request.url.path)
            self.assertEqual("c1", json.loads(request.content)["conversation_id"])
            return httpx.Response(200, json={"conversation_id": "c1", "message": "SCN1A is tier 1."})

        api = ApiClient(max_attempts=1, transport=httpx.MockTransport(handler))
        client = ChatClient(api, "http://ai")

        async def scenario():
            try:
                return await client.send_message(ChatRequest(message="summary?", conversation_id="c1"))
            finally:
                await api.aclose()

        response = asyncio.run(scenario())

        self.assertEqual("c1", response.conversation_id)
        self.assertEqual("SCN1A is tier 1.", response.message)

    def test_client_satisfies_transport_protocol(self) -> None:
        api = ApiClient(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
        self.assertIsInstance(ChatClient(api, "http://ai"), ChatTransport)
        self.assertIsInstance(ChatClient(api, "http://ai"), BufferedChatTransport)
        asyncio.run(api.aclose())

    def test_payload_omits_empty_fields(self) -> None:
        self.assertEqual({"message": "hi"}, ChatRequest(message="hi").to_payload())


if __name__ == "__main__":
    unittest.main()
