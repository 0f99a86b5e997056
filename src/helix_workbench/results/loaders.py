from __future__ import annotations

import json
from datetime import UTC, datetime

from loguru import logger

from helix_workbench.api_client import ApiClient, ApiError
from helix_workbench.results.aggregation import aggregate_results_by_gene
from helix_workbench.results.models import (
    AggregatedPhenotypeResults,
    LiteratureResults,
    ScreeningResponse,
    ScreeningSummary,
)
from helix_workbench.results.store import NoResultsError, ProgressCallback

_TIER_KEYS = {
    "tier1": "tier1_results",
    "tier2": "tier2_results",
    "tier3": "tier3_results",
    "tier4": "tier4_results",
}


def _utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def _no_progress(_: float) -> None:
    return


class ResultLoaders:
    """HTTP collaborators behind the screening, phenotype and literature stores."""

    def __init__(
        self,
        api: ApiClient,
        *,
        screening_api_url: str,
        phenotype_api_url: str,
        literature_api_url: str,
    ) -> None:
        self._api = api
        self._screening_api_url = screening_api_url
        self._phenotype_api_url = phenotype_api_url
        self._literature_api_url = literature_api_url

    async def load_screening_results(
        self,
        session_id: str,
        on_progress: ProgressCallback = _no_progress,
    ) -> ScreeningResponse:
        """Read the NDJSON screening stream: one metadata line, then one line per tiered variant."""
        url = f"{self._screening_api_url}/screening/sessions/{session_id}/screening/stream"
        started_at = _utc_now()
        summary: ScreeningSummary | None = None
        cache_hit = False
        tiers: dict[str, list[dict]] = {key: [] for key in _TIER_KEYS.values()}
        expected = 0
        loaded = 0

        try:
            async with self._api.stream("GET", url, accept="application/x-ndjson") as response:
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        parsed = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed screening line: {line[:120]!r}")
                        continue

                    line_type = parsed.get("type")
                    if line_type == "metadata":
                        summary = ScreeningSummary.from_dict(parsed.get("summary") or {})
                        cache_hit = bool(parsed.get("cache_hit", False))
                        expected = summary.total_count
                        logger.debug(f"Screening metadata: expected={expected}, cache_hit={cache_hit}")
                    elif line_type in _TIER_KEYS:
                        tiers[_TIER_KEYS[line_type]].append(parsed.get("data") or {})
                        loaded += 1
                        if expected > 0:
                            on_progress(round(loaded / expected * 100))
                    elif line_type == "complete":
                        logger.debug(f"Screening stream complete: loaded={loaded}")
                    else:
                        logger.debug(f"Ignoring screening line type {line_type!r}")
        except ApiError as ex:
            if ex.is_not_found:
                raise NoResultsError(f"screening has not been run for session {session_id}") from ex
            raise

        if summary is None:
            raise NoResultsError("no summary received from screening stream")

        return ScreeningResponse(
            summary=summary,
            cache_hit=cache_hit,
            started_at=started_at,
            completed_at=_utc_now(),
            **tiers,
        )

    async def load_all_phenotype_results(
        self,
        session_id: str,
        on_progress: ProgressCallback = _no_progress,
    ) -> AggregatedPhenotypeResults:
        url = f"{self._phenotype_api_url}/phenotype/sessions/{session_id}/results"
        try:
            payload = await self._api.get_json(url) or {}
        except ApiError as ex:
            if ex.is_not_found:
                raise NoResultsError(f"no phenotype matching results for session {session_id}") from ex
            raise

        results = payload.get("results") or []
        if not results:
            raise NoResultsError(f"phenotype matching returned no results for session {session_id}")

        genes = aggregate_results_by_gene(results)
        on_progress(100)
        logger.debug(f"Aggregated {len(results)} phenotype matches into {len(genes)} genes")
        return AggregatedPhenotypeResults(
            genes=genes,
            tier1_count=int(payload.get("tier_1_count", 0)),
            tier2_count=int(payload.get("tier_2_count", 0)),
            tier3_count=int(payload.get("tier_3_count", 0)),
            tier4_count=int(payload.get("tier_4_count", 0)),
            variants_analyzed=int(payload.get("variants_analyzed", 0)),
        )

    async def load_all_literature_results(
        self,
        session_id: str,
        on_progress: ProgressCallback = _no_progress,
    ) -> LiteratureResults:
        url = f"{self._literature_api_url}/api/v1/sessions/{session_id}/results"
        try:
            payload = await self._api.get_json(url) or {}
        except ApiError as ex:
            if ex.is_not_found:
                raise NoResultsError(f"literature search has not been run for session {session_id}") from ex
            raise

        results = payload.get("results") or []
        if not results:
            raise NoResultsError(f"literature search returned no publications for session {session_id}")

        on_progress(100)
        return LiteratureResults(
            results=results,
            total_results=int(payload.get("total_results", len(results))),
            query_summary=payload.get("query_summary") or {},
        )
