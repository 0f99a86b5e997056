from __future__ import annotations

import asyncio

from loguru import logger

from helix_workbench.chat.engine import ConversationEngine, StreamCallbacks, StreamOutcome
from helix_workbench.chat.transcript import LiteratureResultMessage, QueryResultMessage
from helix_workbench.commands.router import CommandRouter
from helix_workbench.results.aggregation import collect_patient_hpo_terms
from helix_workbench.results.models import AggregatedPhenotypeResults
from helix_workbench.results.store import LoadStatus, ResultStore
from helix_workbench.services.result_presenter import ResultPresenter
from helix_workbench.session.monitor import SessionMonitor
from helix_workbench.session.orchestrator import DataLoadOrchestrator
from helix_workbench.session.redirect_guard import SessionRedirectGuard


class Workbench:
    """Terminal host for one analysis session and its conversation."""

    _LINE_PREFIX = "assistant> "

    def __init__(
        self,
        *,
        stores: list[ResultStore],
        engine: ConversationEngine,
        default_view: str = "cases",
        grace_period_seconds: float = 0.1,
    ) -> None:
        self._stores = {store.kind: store for store in stores}
        self._engine = engine
        self._default_view = default_view
        self._view = "analysis"
        self._presenter = ResultPresenter(line_prefix=self._LINE_PREFIX)
        self._monitor = SessionMonitor(stores)
        self._orchestrator = DataLoadOrchestrator(stores)
        self._redirect_guard = SessionRedirectGuard(
            lambda: self._monitor.current_session_id,
            on_redirect=self._redirect_to_default_view,
            grace_period_seconds=grace_period_seconds,
        )
        self._pending_loads: set[asyncio.Future] = set()
        self._pending_reset: asyncio.Future | None = None
        self._monitor.subscribe(self._on_session_changed)

        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_session=self._handle_session_command,
            on_status=self._on_status,
            on_results=self._handle_results_command,
            on_reload=self._on_reload,
            on_new_conversation=self._on_new_conversation,
            on_unknown=self._on_unknown_command,
        )

    @property
    def monitor(self) -> SessionMonitor:
        return self._monitor

    @property
    def engine(self) -> ConversationEngine:
        return self._engine

    @property
    def view(self) -> str:
        return self._view

    @property
    def active_session_id(self) -> str | None:
        return self._monitor.current_session_id

    async def start(self, session_id: str | None = None) -> None:
        if session_id:
            self.select_session(session_id)
        self._redirect_guard.schedule()

    def select_session(self, session_id: str | None) -> bool:
        return self._monitor.set_session_id(session_id)

    async def wait_for_loads(self) -> None:
        if self._pending_loads:
            await asyncio.gather(*list(self._pending_loads), return_exceptions=True)

    async def run(self, user_message: str) -> StreamOutcome | None:
        if await self._command_router.try_handle(user_message):
            return None
        if self._pending_reset is not None:
            # The aborted turn must be reset before a new one starts.
            await asyncio.gather(self._pending_reset, return_exceptions=True)
            self._pending_reset = None
        if self._engine.is_streaming:
            print(f"{self._LINE_PREFIX}Still answering the previous message; please wait.")
            return None

        print(self._LINE_PREFIX, end="", flush=True)
        return await self._engine.submit(
            user_message,
            metadata=self._chat_metadata(),
            callbacks=self._stream_callbacks(),
        )

    async def shutdown(self) -> None:
        self._redirect_guard.cancel()
        await self._engine.abort()
        for future in list(self._pending_loads):
            future.cancel()
        await self.wait_for_loads()

    def _on_session_changed(self, new_id: str | None, old_id: str | None) -> None:
        if self._engine.is_streaming:
            logger.warning("Session changed while a response was streaming; aborting it")
            self._pending_reset = asyncio.ensure_future(self._reset_after_abort(new_id))
            self._track([self._pending_reset])
        else:
            self._engine.reset(session_id=new_id)

        if new_id is None:
            self._redirect_guard.schedule()
            return

        self._view = "analysis"
        self._track(self._orchestrator.run(new_id))

    async def _reset_after_abort(self, session_id: str | None) -> None:
        await self._engine.abort()
        if self._monitor.current_session_id == session_id:
            self._engine.reset(session_id=session_id)

    def _track(self, pending: list) -> None:
        for awaitable in pending:
            future = asyncio.ensure_future(awaitable)
            self._pending_loads.add(future)
            future.add_done_callback(self._on_background_done)

    def _on_background_done(self, future: asyncio.Future) -> None:
        self._pending_loads.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background task failed: {type(error).__name__}: {error}")

    def _loaded_phenotype(self) -> AggregatedPhenotypeResults | None:
        store = self._stores.get("phenotype")
        if store is None or store.status is not LoadStatus.LOADED:
            return None
        data = store.data
        return data if isinstance(data, AggregatedPhenotypeResults) else None

    def _chat_metadata(self) -> dict | None:
        """Patient phenotype context sent with each message once phenotype results are loaded."""
        phenotype = self._loaded_phenotype()
        if phenotype is None:
            return None
        terms = collect_patient_hpo_terms(phenotype)
        if not terms:
            return None
        return {
            "phenotype_context": {
                "hpo_terms": terms,
                "hpo_ids": [term["hpo_id"] for term in terms],
                "term_count": len(terms),
            }
        }

    def _redirect_to_default_view(self) -> None:
        self._view = self._default_view
        print(
            f"\n{self._LINE_PREFIX}No analysis session selected; showing {self._default_view}. "
            "Use /session <id> to open one."
        )

    def _stream_callbacks(self) -> StreamCallbacks:
        def on_querying_started() -> None:
            print(f"\n{self._LINE_PREFIX}[Querying database...]", flush=True)

        def on_literature_searching() -> None:
            print(f"\n{self._LINE_PREFIX}[Searching literature...]", flush=True)

        def on_query_result(message: QueryResultMessage) -> None:
            for line in self._presenter.format_query_result(message):
                print(line)
            print(self._LINE_PREFIX, end="", flush=True)

        def on_literature_result(message: LiteratureResultMessage) -> None:
            for line in self._presenter.format_literature_result(message):
                print(line)
            print(self._LINE_PREFIX, end="", flush=True)

        def on_error(error: Exception) -> None:
            print(f"\n{self._LINE_PREFIX}Error: {error}. Please try again.")

        return StreamCallbacks(
            on_token=lambda token: print(token, end="", flush=True),
            on_querying_started=on_querying_started,
            on_query_result=on_query_result,
            on_literature_searching=on_literature_searching,
            on_literature_result=on_literature_result,
            on_error=on_error,
        )

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Available commands:")
        print(f"{self._LINE_PREFIX}- /help")
        print(f"{self._LINE_PREFIX}- /session [<id>|clear]")
        print(f"{self._LINE_PREFIX}- /status")
        print(f"{self._LINE_PREFIX}- /results <{'|'.join(self._stores)}>")
        print(f"{self._LINE_PREFIX}- /reload")
        print(f"{self._LINE_PREFIX}- /new")

    def _on_unknown_command(self, trimmed: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown local command: {trimmed}")

    async def _handle_session_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) == 1:
            print(f"{self._LINE_PREFIX}Current session: {self.active_session_id or 'none'}")
            return
        if len(parts) != 2:
            print(f"{self._LINE_PREFIX}Usage: /session [<id>|clear]")
            return

        target = None if parts[1] == "clear" else parts[1]
        if not self.select_session(target):
            print(f"{self._LINE_PREFIX}Session unchanged")
            return
        print(f"{self._LINE_PREFIX}Current session: {target or 'none'}")

    async def _on_status(self) -> None:
        print(f"{self._LINE_PREFIX}Session: {self.active_session_id or 'none'} (view: {self._view})")
        for store in self._stores.values():
            print(self._presenter.format_store_status(store))
        transcript = self._engine.transcript
        print(
            f"{self._LINE_PREFIX}Conversation: {transcript.id or 'not started'} "
            f"({len(transcript)} message(s))"
        )

    async def _handle_results_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) != 2 or parts[1] not in self._stores:
            print(f"{self._LINE_PREFIX}Usage: /results <{'|'.join(self._stores)}>")
            return
        await self.wait_for_loads()
        for line in self._presenter.format_results(self._stores[parts[1]], phenotype=self._loaded_phenotype()):
            print(line)

    async def _on_reload(self) -> None:
        session_id = self.active_session_id
        if session_id is None:
            print(f"{self._LINE_PREFIX}No session selected")
            return
        statuses = await self._orchestrator.reload_failed(session_id)
        summary = ", ".join(f"{kind}={status.value}" for kind, status in statuses.items())
        print(f"{self._LINE_PREFIX}Reloaded: {summary}")

    async def _on_new_conversation(self) -> None:
        if self._engine.is_streaming:
            print(f"{self._LINE_PREFIX}Still answering the previous message; please wait.")
            return
        self._engine.reset(session_id=self.active_session_id)
        print(f"{self._LINE_PREFIX}Started a new conversation")
