"""Module de matching et linkage."""

from partlink.matching.index import MatchingIndex
from partlink.matching.linker import Linker
from partlink.matching.orchestrator import BatchOrchestrator, GlobalStageError
from partlink.matching.schema import BatchResult, MatchCandidate, MatchingResult

__all__ = [
    "BatchOrchestrator",
    "BatchResult",
    "GlobalStageError",
    "Linker",
    "MatchCandidate",
    "MatchingIndex",
    "MatchingResult",
]
