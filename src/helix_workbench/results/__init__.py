from helix_workbench.results.loaders import ResultLoaders
from helix_workbench.results.models import (
    AggregatedPhenotypeResults,
    EvidenceCounts,
    GeneAggregatedResult,
    GenePublicationGroup,
    LiteratureResults,
    ScreeningResponse,
    ScreeningSummary,
)
from helix_workbench.results.store import LoadStatus, NoResultsError, ResultStore

__all__ = [
    "AggregatedPhenotypeResults",
    "EvidenceCounts",
    "GeneAggregatedResult",
    "GenePublicationGroup",
    "LiteratureResults",
    "LoadStatus",
    "NoResultsError",
    "ResultLoaders",
    "ResultStore",
    "ScreeningResponse",
    "ScreeningSummary",
]
