from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol

from loguru import logger

SessionListener = Callable[[str | None, str | None], None]


class Resettable(Protocol):
    def clear(self) -> None: ...


class SessionMonitor:
    """Tracks the active session id and hard-resets session-scoped stores when it changes.

    Stores are cleared before the new id is published and before listeners run,
    so no listener can observe data from the previous session.
    """

    def __init__(self, stores: Iterable[Resettable], *, initial_session_id: str | None = None):
        self._stores = list(stores)
        self._session_id = initial_session_id or None
        self._listeners: list[SessionListener] = []

    @property
    def current_session_id(self) -> str | None:
        return self._session_id

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_session_id(self, session_id: str | None) -> bool:
        new_id = (session_id or "").strip() or None
        old_id = self._session_id
        if new_id == old_id:
            return False

        for store in self._stores:
            store.clear()
        self._session_id = new_id

        if new_id is None:
            logger.info(f"Session {old_id} closed; session-scoped results cleared")
        else:
            logger.bind(session_id=new_id).info(f"Active session changed from {old_id or 'none'}")

        for listener in list(self._listeners):
            listener(new_id, old_id)
        return True
