"""Read-only progress summary of matching across the target list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from aedmatch.domain.model import Institution, Year
    from aedmatch.domain.ports.unit_of_work import MatchingUnitOfWork


@dataclass(frozen=True, slots=True, kw_only=True)
class InstitutionStatus:
    institution: Institution
    matched_equipment: int

    @property
    def is_matched(self) -> bool:
        return self.matched_equipment > 0


@dataclass(frozen=True, slots=True, kw_only=True)
class MatchingStatus:
    year: Year
    institutions: tuple[InstitutionStatus, ...]

    @property
    def total_institutions(self) -> int:
        return len(self.institutions)

    @property
    def matched_institutions(self) -> int:
        return sum(1 for status in self.institutions if status.is_matched)

    @property
    def unmatched_institutions(self) -> int:
        return self.total_institutions - self.matched_institutions

    @property
    def matched_equipment(self) -> int:
        return sum(status.matched_equipment for status in self.institutions)

    @property
    def matching_rate(self) -> float:
        """Percentage of institutions with at least one matched device, one decimal."""

        if not self.institutions:
            return 0.0
        return round(self.matched_institutions / self.total_institutions * 100, 1)


def matching_status(
    *,
    unit_of_work_factory: Callable[[], MatchingUnitOfWork],
    year: Year,
    sido: str | None = None,
    gugun: str | None = None,
) -> MatchingStatus:
    with unit_of_work_factory() as uow:
        repos = uow.repositories
        institutions = repos.institutions.find(sido=sido, gugun=gugun)
        counts = repos.matches.matched_counts(year=year)

    return MatchingStatus(
        year=year,
        institutions=tuple(
            InstitutionStatus(
                institution=institution,
                matched_equipment=counts.get(institution.target_key, 0),
            )
            for institution in institutions
        ),
    )
