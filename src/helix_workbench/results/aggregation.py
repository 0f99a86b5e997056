from __future__ import annotations

from helix_workbench.results.models import (
    AggregatedPhenotypeResults,
    EvidenceCounts,
    GeneAggregatedResult,
    GenePublicationGroup,
)

_MATCHED_TERM_MIN_SIMILARITY = 0.5

# Combined publication ranking: clinical priority outweighs literature relevance.
LITERATURE_WEIGHT = 0.4
CLINICAL_WEIGHT = 0.6


def aggregate_results_by_gene(results: list[dict]) -> list[GeneAggregatedResult]:
    """Group per-variant phenotype matches by gene.

    Each gene keeps the tier of its best clinical priority score, the best
    phenotype score seen, and the patient HPO names matched above the
    similarity cut-off. Genes are ranked by best clinical score, highest first.
    """
    by_gene: dict[str, dict] = {}

    for result in results:
        gene_symbol = result.get("gene_symbol") or "Unknown"
        clinical_score = float(result.get("clinical_priority_score", 0.0))
        phenotype_score = float(result.get("phenotype_match_score", 0.0))

        entry = by_gene.get(gene_symbol)
        if entry is None:
            entry = {
                "variants": [],
                "best_clinical_score": clinical_score,
                "best_phenotype_score": phenotype_score,
                "best_tier": str(result.get("clinical_tier", "")),
                "matched_terms": {},
            }
            by_gene[gene_symbol] = entry

        entry["variants"].append(result)
        if clinical_score > entry["best_clinical_score"]:
            entry["best_clinical_score"] = clinical_score
            entry["best_tier"] = str(result.get("clinical_tier", ""))
        entry["best_phenotype_score"] = max(entry["best_phenotype_score"], phenotype_score)

        for match in result.get("individual_matches") or []:
            name = match.get("patient_hpo_name")
            if name and float(match.get("similarity_score", 0.0)) > _MATCHED_TERM_MIN_SIMILARITY:
                # dict keeps first-seen order, unlike a set
                entry["matched_terms"][name] = None

    ordered = sorted(by_gene.items(), key=lambda item: item[1]["best_clinical_score"], reverse=True)
    return [
        GeneAggregatedResult(
            gene_symbol=gene_symbol,
            rank=rank,
            best_clinical_score=entry["best_clinical_score"],
            best_phenotype_score=entry["best_phenotype_score"],
            best_tier=entry["best_tier"],
            variant_count=len(entry["variants"]),
            matched_hpo_terms=list(entry["matched_terms"]),
            variants=sorted(
                entry["variants"],
                key=lambda v: float(v.get("clinical_priority_score", 0.0)),
                reverse=True,
            ),
        )
        for rank, (gene_symbol, entry) in enumerate(ordered, start=1)
    ]


def count_by_strength(publications: list[dict]) -> EvidenceCounts:
    return EvidenceCounts.from_publications(publications)


def _relevance(publication: dict) -> float:
    return float(publication.get("relevance_score") or 0.0)


def group_publications_by_gene(
    publications: list[dict],
    phenotype: AggregatedPhenotypeResults | None = None,
) -> list[GenePublicationGroup]:
    """Group publications under every gene they mention and rank the genes.

    A gene that also appears in the phenotype ranking is scored as
    ``0.4 * best relevance + 0.6 * clinical score / 100``; any other gene is
    scored by its best relevance alone. Groups come back best first, and the
    publications inside a group by relevance.
    """
    clinical = {gene.gene_symbol: gene for gene in phenotype.genes} if phenotype is not None else {}

    by_gene: dict[str, list[dict]] = {}
    for publication in publications:
        evidence = publication.get("evidence") or {}
        for gene in evidence.get("gene_mentions") or []:
            by_gene.setdefault(gene, []).append(publication)

    groups = []
    for gene, mentions in by_gene.items():
        best_score = max(_relevance(p) for p in mentions)
        ranked = clinical.get(gene)
        if ranked is None:
            combined = best_score
        else:
            combined = best_score * LITERATURE_WEIGHT + (ranked.best_clinical_score / 100) * CLINICAL_WEIGHT
        groups.append(
            GenePublicationGroup(
                gene=gene,
                publications=sorted(mentions, key=_relevance, reverse=True),
                counts=count_by_strength(mentions),
                best_score=best_score,
                combined_score=combined,
                clinical_score=ranked.best_clinical_score if ranked else None,
                clinical_tier=ranked.best_tier if ranked else None,
                phenotype_rank=ranked.rank if ranked else None,
            )
        )
    groups.sort(key=lambda group: group.combined_score, reverse=True)
    return groups


def collect_patient_hpo_terms(phenotype: AggregatedPhenotypeResults) -> list[dict[str, str]]:
    """Distinct patient HPO terms that the phenotype matcher scored, in first-seen order."""
    terms: dict[str, str] = {}
    for gene in phenotype.genes:
        for variant in gene.variants:
            for match in variant.get("individual_matches") or []:
                hpo_id = match.get("patient_hpo_id")
                if hpo_id and hpo_id not in terms:
                    terms[hpo_id] = str(match.get("patient_hpo_name") or hpo_id)
    return [{"hpo_id": hpo_id, "name": name} for hpo_id, name in terms.items()]
