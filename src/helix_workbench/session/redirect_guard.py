from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger

_DEFAULT_GRACE_PERIOD_SECONDS = 0.1


class SessionRedirectGuard:
    """Sends the host to its default view if no session id shows up within a grace period.

    The session id is read through ``session_source`` when the timer fires, not
    when it is armed, so an id published during the wait is honoured.
    """

    def __init__(
        self,
        session_source: Callable[[], str | None],
        *,
        on_redirect: Callable[[], None],
        grace_period_seconds: float = _DEFAULT_GRACE_PERIOD_SECONDS,
    ) -> None:
        self._session_source = session_source
        self._on_redirect = on_redirect
        self._grace_period_seconds = max(0.0, grace_period_seconds)
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._grace_period_seconds, self._check)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _check(self) -> None:
        self._handle = None
        if self._session_source():
            return
        logger.info(f"No session after {self._grace_period_seconds:g}s grace period; redirecting")
        self._on_redirect()
