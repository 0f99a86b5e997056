from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

# SSE event name for plain text tokens (the SSE default when no event: line is sent).
TOKEN_EVENT = "message"


@dataclass(frozen=True)
class ConversationStarted:
    conversation_id: str


@dataclass(frozen=True)
class Token:
    text: str


@dataclass(frozen=True)
class QueryingStarted:
    pass


@dataclass(frozen=True)
class QueryResult:
    sql: str
    data: list[dict] = field(default_factory=list)
    rows_returned: int = 0
    execution_time_ms: float = 0.0
    summary: str | None = None
    visualization: dict | None = None


@dataclass(frozen=True)
class LiteratureSearching:
    pass


@dataclass(frozen=True)
class LiteratureResult:
    results: list[dict] = field(default_factory=list)
    total_results: int = 0
    query: str | None = None
    search_time_ms: float | None = None
    summary: str | None = None


@dataclass(frozen=True)
class RoundComplete:
    round: int | None = None


StreamEvent = (
    ConversationStarted
    | Token
    | QueryingStarted
    | QueryResult
    | LiteratureSearching
    | LiteratureResult
    | RoundComplete
)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _number(value: Any, kind: type, default: Any) -> Any:
    # Servers send null for counts and timings they did not measure.
    return default if value is None else kind(value)


def _conversation_started(payload: dict) -> ConversationStarted:
    return ConversationStarted(conversation_id=str(payload["conversation_id"]))


def _query_result(payload: dict) -> QueryResult:
    # Older servers send the rows under "results".
    rows = payload.get("data", payload.get("results")) or []
    return QueryResult(
        sql=str(payload.get("sql") or ""),
        data=list(rows),
        rows_returned=_number(payload.get("rows_returned"), int, len(rows)),
        execution_time_ms=_number(payload.get("execution_time_ms"), float, 0.0),
        summary=_optional_str(payload.get("summary")),
        visualization=payload.get("visualization"),
    )


def _literature_result(payload: dict) -> LiteratureResult:
    results = payload.get("results") or []
    return LiteratureResult(
        results=list(results),
        total_results=_number(payload.get("total_results"), int, len(results)),
        query=_optional_str(payload.get("query")),
        search_time_ms=_optional_float(payload.get("search_time_ms")),
        summary=_optional_str(payload.get("summary")),
    )


def _round_complete(payload: dict) -> RoundComplete:
    value = payload.get("round")
    return RoundComplete(round=None if value is None else int(value))


_STRUCTURED_DECODERS = {
    "conversation_started": _conversation_started,
    "querying_started": lambda _: QueryingStarted(),
    "query_result": _query_result,
    "literature_searching": lambda _: LiteratureSearching(),
    "literature_result": _literature_result,
    "round_complete": _round_complete,
}


def decode_event(event_name: str, data: str) -> StreamEvent | None:
    """Turn one SSE (event, data) pair into a StreamEvent.

    Returns None for frames that carry nothing to apply: empty tokens,
    unknown event names and malformed structured payloads. Those are logged,
    never raised, so one bad frame cannot end the stream.
    """
    if event_name in ("", TOKEN_EVENT, "token"):
        return Token(text=data) if data else None

    decoder = _STRUCTURED_DECODERS.get(event_name)
    if decoder is None:
        logger.warning(f"Ignoring unknown stream event {event_name!r}")
        return None

    try:
        payload = json.loads(data) if data.strip() else {}
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
        return decoder(payload)
    except (ValueError, KeyError, TypeError) as ex:
        logger.error(f"Failed to parse {event_name} event: {ex}")
        return None
