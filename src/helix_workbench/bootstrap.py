from __future__ import annotations

from dataclasses import dataclass

import httpx

from helix_workbench.api_client import ApiClient
from helix_workbench.app_config import AppConfig, RuntimeEnv
from helix_workbench.chat.client import ChatClient
from helix_workbench.chat.engine import ConversationEngine
from helix_workbench.logging_config import setup_logging
from helix_workbench.results.loaders import ResultLoaders
from helix_workbench.results.store import ResultStore
from helix_workbench.workbench import Workbench


@dataclass
class AppRuntime:
    workbench: Workbench
    api_client: ApiClient
    stores: list[ResultStore]
    initial_session_id: str | None
    log_descriptions: list[str]


def build_stores(loaders: ResultLoaders) -> list[ResultStore]:
    return [
        ResultStore("screening", loaders.load_screening_results),
        ResultStore("phenotype", loaders.load_all_phenotype_results),
        ResultStore("literature", loaders.load_all_literature_results),
    ]


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    configure_logging: bool = True,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers) if configure_logging else []

    api_client = ApiClient(
        token=env.api_token,
        timeout_seconds=app.request_timeout_seconds,
        max_attempts=app.max_retry_attempts,
        transport=transport,
    )
    loaders = ResultLoaders(
        api_client,
        screening_api_url=app.screening_api_url,
        phenotype_api_url=app.phenotype_api_url,
        literature_api_url=app.literature_api_url,
    )
    stores = build_stores(loaders)
    engine = ConversationEngine(ChatClient(api_client, app.ai_service_url))

    workbench = Workbench(
        stores=stores,
        engine=engine,
        default_view=app.default_view,
        grace_period_seconds=app.session_grace_period_seconds,
    )

    return AppRuntime(
        workbench=workbench,
        api_client=api_client,
        stores=stores,
        initial_session_id=env.session_id or app.configured_session_id,
        log_descriptions=log_descriptions,
    )
