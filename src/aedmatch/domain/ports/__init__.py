"""Domain port definitions for adapters."""

from __future__ import annotations

from .committing import (
    CommitRequest,
    CommitResult,
    MatchCommitter,
    UnmatchRequest,
    UnmatchResult,
)
from .fetching import CandidateFetchResult, CandidateSource, ConflictChecker, ExistingMatchQuery
from .persistence import (
    DeviceRepository,
    ExistingMatchRepository,
    InstitutionRepository,
    MatchLogRepository,
    Repository,
)
from .unit_of_work import (
    MatchingRepositories,
    MatchingUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "CandidateFetchResult",
    "CandidateSource",
    "CommitRequest",
    "CommitResult",
    "ConflictChecker",
    "DeviceRepository",
    "ExistingMatchQuery",
    "ExistingMatchRepository",
    "InstitutionRepository",
    "MatchCommitter",
    "MatchLogRepository",
    "MatchingRepositories",
    "MatchingUnitOfWork",
    "Repository",
    "RepositoryCollection",
    "UnitOfWork",
    "UnmatchRequest",
    "UnmatchResult",
]
