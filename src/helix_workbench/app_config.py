from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    api_token: str | None
    session_id: str | None


@dataclass
class AppConfig:
    screening_api_url: str
    phenotype_api_url: str
    literature_api_url: str
    ai_service_url: str
    request_timeout_seconds: float
    max_retry_attempts: int
    session_grace_period_ms: int
    default_view: str
    configured_session_id: str | None
    log_level: str
    log_consumers: list | None

    @property
    def session_grace_period_seconds(self) -> float:
        return self.session_grace_period_ms / 1000


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _strip_url(value: object, default: str) -> str:
    text = str(value or "").strip()
    return (text or default).rstrip("/")


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        screening_api_url=_strip_url(config.get("ScreeningApiUrl"), "http://localhost:9002"),
        phenotype_api_url=_strip_url(config.get("PhenotypeApiUrl"), "http://localhost:9004/api"),
        literature_api_url=_strip_url(config.get("LiteratureApiUrl"), "http://localhost:9004"),
        ai_service_url=_strip_url(config.get("AiServiceUrl"), "http://localhost:9007"),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        max_retry_attempts=max(1, int(config.get("MaxRetryAttempts", 3))),
        session_grace_period_ms=max(0, int(config.get("SessionGracePeriodMs", 100))),
        default_view=str(config.get("DefaultView", "cases")).strip() or "cases",
        configured_session_id=str(config.get("SessionId", "")).strip() or None,
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_token=os.environ.get("HELIX_API_TOKEN") or None,
        session_id=(os.environ.get("HELIX_SESSION_ID") or "").strip() or None,
    )
