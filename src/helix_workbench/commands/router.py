from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_session: Callable[[str], Awaitable[None]],
        on_status: Callable[[], Awaitable[None]],
        on_results: Callable[[str], Awaitable[None]],
        on_reload: Callable[[], Awaitable[None]],
        on_new_conversation: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_session = on_session
        self._on_status = on_status
        self._on_results = on_results
        self._on_reload = on_reload
        self._on_new_conversation = on_new_conversation
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, _ = trimmed.partition(" ")
        if command == "/help":
            await self._on_help()
            return True
        if command == "/session":
            await self._on_session(trimmed)
            return True
        if command == "/status":
            await self._on_status()
            return True
        if command == "/results":
            await self._on_results(trimmed)
            return True
        if command == "/reload":
            await self._on_reload()
            return True
        if command == "/new":
            await self._on_new_conversation()
            return True

        self._on_unknown(trimmed)
        return True
