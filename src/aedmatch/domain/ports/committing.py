"""Ports for applying resolved plans to durable storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from aedmatch.domain.matching.plan import Strategy

if TYPE_CHECKING:
    from aedmatch.domain.model import EquipmentSerial, ManagementNumber, TargetKey, Year


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitRequest:
    """Fully resolved instruction for the match committer.

    ``equipment_serials`` narrows the claim to specific devices; ``None`` means
    every device of ``management_numbers``. Serials in ``removed_from_new`` are
    never claimed. Serials in ``removed_from_existing`` lose their claims to
    other institutions in the same transaction.
    """

    target_key: TargetKey
    year: Year
    management_numbers: tuple[ManagementNumber, ...]
    strategy: Strategy = Strategy.ADD
    equipment_serials: tuple[EquipmentSerial, ...] | None = None
    removed_from_existing: frozenset[EquipmentSerial] = frozenset()
    removed_from_new: frozenset[EquipmentSerial] = frozenset()
    operator: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitResult:
    matched_management_numbers: int
    matched_equipment: int
    newly_matched: int = 0
    already_matched: int = 0
    evicted: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class UnmatchRequest:
    target_key: TargetKey
    year: Year
    reason: str | None = None
    operator: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class UnmatchResult:
    unmatched_count: int
    equipment_count: int


@runtime_checkable
class MatchCommitter(Protocol):
    """Applies commit requests atomically; retrying a request must not double-claim."""

    def commit(self, request: CommitRequest) -> CommitResult: ...

    def unmatch(self, request: UnmatchRequest) -> UnmatchResult: ...


__all__ = [
    "CommitRequest",
    "CommitResult",
    "MatchCommitter",
    "UnmatchRequest",
    "UnmatchResult",
]
