from __future__ import annotations

from helix_workbench.chat.transcript import LiteratureResultMessage, QueryResultMessage
from helix_workbench.results.aggregation import group_publications_by_gene
from helix_workbench.results.models import (
    AggregatedPhenotypeResults,
    LiteratureResults,
    ScreeningResponse,
)
from helix_workbench.results.store import LoadStatus, ResultStore

_STATUS_LABELS = {
    LoadStatus.IDLE: "not loaded",
    LoadStatus.LOADING: "loading",
    LoadStatus.LOADED: "loaded",
    LoadStatus.NO_DATA: "no data available",
    LoadStatus.ERROR: "no data available (load failed)",
}


class ResultPresenter:
    """Plain-text formatting for store state and tool results."""

    def __init__(self, *, line_prefix: str, max_rows: int = 5):
        self._line_prefix = line_prefix
        self._max_rows = max_rows

    def format_store_status(self, store: ResultStore) -> str:
        label = _STATUS_LABELS[store.status]
        if store.status is LoadStatus.LOADING and store.progress > 0:
            label = f"{label} ({store.progress:.0f}%)"
        return f"{self._line_prefix}- {store.kind}: {label}"

    def format_results(self, store: ResultStore, *, phenotype: AggregatedPhenotypeResults | None = None) -> list[str]:
        """Summarize a loaded store. Literature genes are ranked against ``phenotype`` when given."""
        data = store.data
        if store.status is not LoadStatus.LOADED or data is None:
            return [self.format_store_status(store)]
        if isinstance(data, ScreeningResponse):
            return self._screening_lines(data)
        if isinstance(data, AggregatedPhenotypeResults):
            return self._phenotype_lines(data)
        if isinstance(data, LiteratureResults):
            return self._literature_lines(data, phenotype)
        return [f"{self._line_prefix}{store.kind}: {data!r}"]

    def format_query_result(self, message: QueryResultMessage) -> list[str]:
        lines = [
            f"{self._line_prefix}[query] {message.rows_returned} row(s) in {message.execution_time_ms:.0f} ms",
            f"{self._line_prefix}  {message.sql.strip()}",
        ]
        for row in message.data[: self._max_rows]:
            lines.append(f"{self._line_prefix}  {row}")
        if len(message.data) > self._max_rows:
            lines.append(f"{self._line_prefix}  ... {len(message.data) - self._max_rows} more")
        return lines

    def format_literature_result(self, message: LiteratureResultMessage) -> list[str]:
        lines = [f"{self._line_prefix}[literature] {message.total_results} publication(s)"]
        for publication in message.results[: self._max_rows]:
            title = publication.get("title", "(untitled)")
            pmid = publication.get("pmid", "-")
            lines.append(f"{self._line_prefix}  PMID {pmid}: {title}")
        return lines

    def _screening_lines(self, data: ScreeningResponse) -> list[str]:
        s = data.summary
        return [
            f"{self._line_prefix}Screening ({s.total_variants_analyzed} variants analyzed"
            f"{', cached' if data.cache_hit else ''}):",
            f"{self._line_prefix}- Tier 1: {len(data.tier1_results)} | Tier 2: {len(data.tier2_results)} "
            f"| Tier 3: {len(data.tier3_results)} | Tier 4: {len(data.tier4_results)}",
            f"{self._line_prefix}- Pathogenic: {s.pathogenic_count} | Likely pathogenic: "
            f"{s.likely_pathogenic_count} | VUS: {s.vus_count}",
        ]

    def _phenotype_lines(self, data: AggregatedPhenotypeResults) -> list[str]:
        lines = [
            f"{self._line_prefix}Phenotype matching ({data.total_genes} genes, "
            f"{data.variants_analyzed} variants analyzed):"
        ]
        for gene in data.genes[: self._max_rows]:
            terms = ", ".join(gene.matched_hpo_terms) or "-"
            lines.append(
                f"{self._line_prefix}{gene.rank:>3}. {gene.gene_symbol} "
                f"score={gene.best_clinical_score:.2f} tier={gene.best_tier} "
                f"variants={gene.variant_count} terms={terms}"
            )
        return lines

    def _literature_lines(self, data: LiteratureResults, phenotype: AggregatedPhenotypeResults | None) -> list[str]:
        counts = data.evidence_counts
        lines = [
            f"{self._line_prefix}Literature ({data.total_results} publications):",
            f"{self._line_prefix}- Evidence: {counts.strong} strong, {counts.moderate} moderate, "
            f"{counts.supporting} supporting, {counts.weak} weak",
        ]
        groups = group_publications_by_gene(data.results, phenotype)
        if not groups:
            for publication in data.results[: self._max_rows]:
                title = publication.get("title", "(untitled)")
                pmid = publication.get("pmid", "-")
                lines.append(f"{self._line_prefix}- PMID {pmid}: {title}")
            return lines

        if phenotype is not None:
            lines.append(f"{self._line_prefix}Top genes by combined score (60% clinical priority + 40% literature relevance):")
        else:
            lines.append(f"{self._line_prefix}Top genes by literature relevance:")
        for index, group in enumerate(groups[: self._max_rows], start=1):
            tier = f" [{group.clinical_tier}]" if group.clinical_tier else ""
            clinical = f", clinical {group.clinical_score:.0f}" if group.clinical_score else ""
            lines.append(
                f"{self._line_prefix}{index:>3}. {group.gene}{tier} combined {group.combined_score:.0%}, "
                f"literature {group.best_score:.0%}{clinical}; {len(group.publications)} publication(s) "
                f"({group.counts.strong} strong, {group.counts.moderate} moderate)"
            )
        if len(groups) > self._max_rows:
            lines.append(f"{self._line_prefix}... and {len(groups) - self._max_rows} more genes")
        return lines
