"""Ports for reading candidate and match state from collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aedmatch.domain.matching.conflicts import ConflictReport
    from aedmatch.domain.model import (
        BasketItem,
        EquipmentGroup,
        EquipmentSerial,
        ExistingMatch,
        TargetKey,
        Year,
    )


@dataclass(slots=True)
class CandidateFetchResult:
    """Equipment groups offered for one institution.

    Both lists are equally valid sources for basket insertion.
    """

    auto_suggestions: list[EquipmentGroup] = field(default_factory=list["EquipmentGroup"])
    search_results: list[EquipmentGroup] = field(default_factory=list["EquipmentGroup"])

    @property
    def all_groups(self) -> list[EquipmentGroup]:
        seen: set[str] = set()
        groups: list[EquipmentGroup] = []
        for group in (*self.auto_suggestions, *self.search_results):
            if group.management_number in seen:
                continue
            seen.add(group.management_number)
            groups.append(group)
        return groups


@runtime_checkable
class CandidateSource(Protocol):
    """Callable port returning equipment-group candidates for an institution."""

    def __call__(
        self,
        target_key: TargetKey,
        *,
        year: Year,
        include_all_region: bool = False,
        include_matched: bool = False,
        search: str | None = None,
    ) -> CandidateFetchResult: ...


@runtime_checkable
class ExistingMatchQuery(Protocol):
    """Callable port returning persisted matches for the given serials."""

    def __call__(
        self,
        serials: Sequence[EquipmentSerial],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> Sequence[ExistingMatch]: ...


@runtime_checkable
class ConflictChecker(Protocol):
    """Callable port classifying basket items against persisted matches."""

    def __call__(
        self,
        target_key: TargetKey,
        items: Sequence[BasketItem],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> ConflictReport: ...


__all__ = ["CandidateFetchResult", "CandidateSource", "ConflictChecker", "ExistingMatchQuery"]
