from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence

from loguru import logger

from helix_workbench.results.store import LoadStatus, ResultStore


class DataLoadOrchestrator:
    """Issues at most one load per store for the session it is given.

    The status check is the only guard: a store that is not IDLE is already
    loading or settled for this session and is left alone. Each load is its
    own task, so one store failing or hanging never holds up the others.
    """

    def __init__(self, stores: Sequence[ResultStore]):
        self._stores = list(stores)

    @property
    def stores(self) -> list[ResultStore]:
        return list(self._stores)

    def run(self, session_id: str | None) -> list[Awaitable[None]]:
        if not session_id:
            logger.debug("No active session; skipping result loads")
            return []

        pending: list[Awaitable[None]] = []
        for store in self._stores:
            if store.status is not LoadStatus.IDLE:
                continue
            pending.append(store.load(session_id))

        if pending:
            logger.bind(session_id=session_id).debug(f"Issued {len(pending)} result load(s)")
        return pending

    async def run_and_wait(self, session_id: str | None) -> dict[str, LoadStatus]:
        pending = self.run(session_id)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.statuses()

    async def reload_failed(self, session_id: str | None) -> dict[str, LoadStatus]:
        for store in self._stores:
            if store.status is LoadStatus.ERROR:
                store.clear()
        return await self.run_and_wait(session_id)

    def statuses(self) -> dict[str, LoadStatus]:
        return {store.kind: store.status for store in self._stores}
