from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScreeningSummary:
    session_id: str
    total_variants_analyzed: int
    pathogenic_count: int
    likely_pathogenic_count: int
    vus_count: int
    tier1_count: int
    tier2_count: int
    tier3_count: int
    tier4_count: int
    processing_time_seconds: float

    @property
    def total_count(self) -> int:
        return self.tier1_count + self.tier2_count + self.tier3_count + self.tier4_count

    @classmethod
    def from_dict(cls, payload: dict) -> ScreeningSummary:
        return cls(
            session_id=str(payload.get("session_id", "")),
            total_variants_analyzed=int(payload.get("total_variants_analyzed", 0)),
            pathogenic_count=int(payload.get("pathogenic_count", 0)),
            likely_pathogenic_count=int(payload.get("likely_pathogenic_count", 0)),
            vus_count=int(payload.get("vus_count", 0)),
            tier1_count=int(payload.get("tier1_count", 0)),
            tier2_count=int(payload.get("tier2_count", 0)),
            tier3_count=int(payload.get("tier3_count", 0)),
            tier4_count=int(payload.get("tier4_count", 0)),
            processing_time_seconds=float(payload.get("processing_time_seconds", 0.0)),
        )


@dataclass
class ScreeningResponse:
    summary: ScreeningSummary
    tier1_results: list[dict] = field(default_factory=list)
    tier2_results: list[dict] = field(default_factory=list)
    tier3_results: list[dict] = field(default_factory=list)
    tier4_results: list[dict] = field(default_factory=list)
    cache_hit: bool = False
    started_at: str = ""
    completed_at: str = ""

    @property
    def loaded_count(self) -> int:
        return (
            len(self.tier1_results)
            + len(self.tier2_results)
            + len(self.tier3_results)
            + len(self.tier4_results)
        )


@dataclass(frozen=True)
class GeneAggregatedResult:
    gene_symbol: str
    rank: int
    best_clinical_score: float
    best_phenotype_score: float
    best_tier: str
    variant_count: int
    matched_hpo_terms: list[str]
    variants: list[dict]


@dataclass
class AggregatedPhenotypeResults:
    genes: list[GeneAggregatedResult]
    tier1_count: int = 0
    tier2_count: int = 0
    tier3_count: int = 0
    tier4_count: int = 0
    variants_analyzed: int = 0

    @property
    def total_genes(self) -> int:
        return len(self.genes)


@dataclass
class LiteratureResults:
    results: list[dict]
    total_results: int
    query_summary: dict = field(default_factory=dict)

    @property
    def evidence_counts(self) -> EvidenceCounts:
        return EvidenceCounts.from_publications(self.results)


def evidence_strength(publication: dict) -> str:
    evidence = publication.get("evidence") or {}
    return str(evidence.get("evidence_strength") or "").upper()


@dataclass(frozen=True)
class EvidenceCounts:
    strong: int = 0
    moderate: int = 0
    supporting: int = 0
    weak: int = 0

    @classmethod
    def from_publications(cls, publications: list[dict]) -> EvidenceCounts:
        strengths = [evidence_strength(p) for p in publications]
        return cls(
            strong=strengths.count("STRONG"),
            moderate=strengths.count("MODERATE"),
            supporting=strengths.count("SUPPORTING"),
            weak=strengths.count("WEAK"),
        )


@dataclass(frozen=True)
class GenePublicationGroup:
    """Publications mentioning one gene, scored against its phenotype ranking."""

    gene: str
    publications: list[dict]
    counts: EvidenceCounts
    best_score: float
    combined_score: float
    clinical_score: float | None = None
    clinical_tier: str | None = None
    phenotype_rank: int | None = None
