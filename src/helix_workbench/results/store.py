from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")

ProgressCallback = Callable[[float], None]
Loader = Callable[[str, ProgressCallback], Awaitable[T]]


class LoadStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    NO_DATA = "no_data"
    ERROR = "error"

    @property
    def is_settled(self) -> bool:
        return self in (LoadStatus.LOADED, LoadStatus.NO_DATA, LoadStatus.ERROR)


class NoResultsError(Exception):
    """The backend has nothing for this session (never run, or empty)."""


class ResultStore(Generic[T]):
    """Session-scoped cache of one analysis domain with a load-status state machine.

    ``load`` flips the status to LOADING before any await, so a second call made
    while the first is pending sees LOADING and joins the in-flight task instead
    of issuing another request. This relies on the single-threaded event loop.

    ``clear`` bumps a generation counter; a load that was in flight when the
    store was cleared still runs to completion but its outcome is dropped.
    """

    def __init__(self, kind: str, loader: Loader[T]):
        self._kind = kind
        self._loader = loader
        self._data: T | None = None
        self._status = LoadStatus.IDLE
        self._error: BaseException | None = None
        self._session_id: str | None = None
        self._progress = 0.0
        self._generation = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def data(self) -> T | None:
        return self._data

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def progress(self) -> float:
        return self._progress

    def load(self, session_id: str) -> Awaitable[None]:
        if self._status is LoadStatus.LOADING and self._task is not None:
            return self._task
        if self._status is not LoadStatus.IDLE:
            return _settled()

        self._status = LoadStatus.LOADING
        self._session_id = session_id
        self._error = None
        self._progress = 0.0
        self._task = asyncio.ensure_future(self._run(session_id, self._generation))
        return self._task

    def clear(self) -> None:
        if self._status is LoadStatus.LOADING:
            logger.debug(f"{self._kind} store cleared with a load in flight; its result will be dropped")
        self._generation += 1
        self._data = None
        self._status = LoadStatus.IDLE
        self._error = None
        self._session_id = None
        self._progress = 0.0
        self._task = None

    async def _run(self, session_id: str, generation: int) -> None:
        log = logger.bind(session_id=session_id)

        def report_progress(percent: float) -> None:
            if generation == self._generation:
                self._progress = max(0.0, min(100.0, percent))

        try:
            data = await self._loader(session_id, report_progress)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._status = LoadStatus.IDLE
                self._session_id = None
            raise
        except NoResultsError as ex:
            if generation != self._generation:
                return
            self._status = LoadStatus.NO_DATA
            self._error = ex
            log.info(f"No {self._kind} results for session: {ex}")
        except Exception as ex:
            if generation != self._generation:
                return
            self._status = LoadStatus.ERROR
            self._error = ex
            log.warning(f"Loading {self._kind} results failed: {type(ex).__name__}: {ex}")
        else:
            if generation != self._generation:
                log.debug(f"Discarding {self._kind} results for a session that is no longer active")
                return
            self._data = data
            self._progress = 100.0
            self._status = LoadStatus.LOADED
            log.info(f"Loaded {self._kind} results")
        finally:
            if generation == self._generation:
                self._task = None


def _settled() -> asyncio.Future[None]:
    future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    future.set_result(None)
    return future
