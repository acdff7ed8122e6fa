"""Conflict detection between a basket and persisted matches.

Responsibilities of this stage:
- expand basket items into the serials they claim
- look up existing matches for exactly those serials
- classify each serial once and describe every cross-institution claim

Out of scope for this stage:
- deciding what to do about conflicts
- any mutation
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError, ConflictCheckFailure
from aedmatch.domain.model import MatchClassification

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from aedmatch.domain.model import (
        BasketItem,
        EquipmentSerial,
        ExistingMatch,
        ManagementNumber,
        TargetKey,
        Year,
    )
    from aedmatch.domain.ports.fetching import ExistingMatchQuery

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class DeviceInfo:
    institution_name: str
    address: str
    installation_position: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ExistingMatchView:
    """An existing match as seen from the institution being matched."""

    target_key: TargetKey
    institution_name: str
    management_number: ManagementNumber
    matched_at: datetime
    is_target_match: bool


@dataclass(frozen=True, slots=True, kw_only=True)
class Conflict:
    """A basket serial that another institution already claims."""

    equipment_serial: EquipmentSerial
    management_number: ManagementNumber
    device: DeviceInfo
    existing_matches: tuple[ExistingMatchView, ...]

    @property
    def other_target_keys(self) -> tuple[TargetKey, ...]:
        keys: list[TargetKey] = []
        for match in self.existing_matches:
            if not match.is_target_match and match.target_key not in keys:
                keys.append(match.target_key)
        return tuple(keys)


@dataclass(frozen=True, slots=True, kw_only=True)
class ConflictReport:
    """Classification of every serial a commit attempt would claim."""

    target_key: TargetKey
    year: Year
    classifications: Mapping[EquipmentSerial, MatchClassification] = field(
        default_factory=dict["EquipmentSerial", "MatchClassification"]
    )
    conflicts: tuple[Conflict, ...] = ()

    @property
    def total_devices(self) -> int:
        return len(self.classifications)

    @property
    def already_matched_to_target(self) -> int:
        return self._count(MatchClassification.ALREADY_MATCHED_TO_TARGET)

    @property
    def matched_to_other(self) -> int:
        return self._count(MatchClassification.MATCHED_TO_OTHER)

    @property
    def unmatched(self) -> int:
        return self._count(MatchClassification.UNMATCHED)

    @property
    def has_conflicts(self) -> bool:
        return self.matched_to_other > 0

    @property
    def is_partial_conflict(self) -> bool:
        """Only some devices belong elsewhere; usually a mistaken earlier batch match."""

        return 0 < self.matched_to_other < self.total_devices

    @property
    def summary(self) -> str:
        if self.has_conflicts:
            return f"{self.matched_to_other} devices are already matched to another institution."
        return "All devices can be matched safely."

    def serials(self, classification: MatchClassification) -> tuple[EquipmentSerial, ...]:
        return tuple(
            serial for serial, value in self.classifications.items() if value is classification
        )

    def conflict_for(self, serial: EquipmentSerial) -> Conflict | None:
        for conflict in self.conflicts:
            if conflict.equipment_serial == serial:
                return conflict
        return None

    def restricted_to(self, serials: Sequence[EquipmentSerial]) -> ConflictReport:
        """Return a report limited to ``serials`` (unknown serials count as unmatched)."""

        wanted = tuple(dict.fromkeys(serials))
        return ConflictReport(
            target_key=self.target_key,
            year=self.year,
            classifications={
                serial: self.classifications.get(serial, MatchClassification.UNMATCHED)
                for serial in wanted
            },
            conflicts=tuple(
                conflict for conflict in self.conflicts if conflict.equipment_serial in wanted
            ),
        )

    def _count(self, classification: MatchClassification) -> int:
        return sum(1 for value in self.classifications.values() if value is classification)


def check_conflicts(
    target_key: TargetKey,
    items: Sequence[BasketItem],
    year: Year,
    *,
    fetch_existing: ExistingMatchQuery,
    timeout: float | None = None,
) -> ConflictReport:
    """Classify every serial claimed by ``items`` against persisted matches.

    Failures of ``fetch_existing`` surface as ``ConflictCheckFailure``.
    """

    sources: dict[EquipmentSerial, BasketItem] = {}
    for item in items:
        if item.target_key != target_key:
            raise BasketValidationError(
                f"Basket item {item.management_number} belongs to {item.target_key}, "
                f"not {target_key}"
            )
        for serial in item.effective_serials:
            sources.setdefault(serial, item)

    if not sources:
        return ConflictReport(target_key=target_key, year=year)

    try:
        rows = fetch_existing(tuple(sources), year=year, timeout=timeout)
    except ConflictCheckFailure:
        raise
    except TimeoutError as exc:
        raise ConflictCheckFailure(
            "Existing match lookup timed out", target_key=target_key, timed_out=True
        ) from exc
    except Exception as exc:
        raise ConflictCheckFailure(
            f"Existing match lookup failed: {exc}", target_key=target_key
        ) from exc

    rows_by_serial: dict[EquipmentSerial, list[ExistingMatch]] = defaultdict(list)
    for row in rows:
        if row.equipment_serial in sources:
            rows_by_serial[row.equipment_serial].append(row)

    classifications: dict[EquipmentSerial, MatchClassification] = {}
    conflicts: list[Conflict] = []
    for serial, item in sources.items():
        serial_rows = rows_by_serial.get(serial, [])
        classification = _classify(target_key, serial_rows)
        classifications[serial] = classification
        if classification is MatchClassification.MATCHED_TO_OTHER:
            conflicts.append(_conflict_for(target_key, serial, item, serial_rows))

    report = ConflictReport(
        target_key=target_key,
        year=year,
        classifications=classifications,
        conflicts=tuple(conflicts),
    )
    log.info(
        "Conflict check for %s: total=%s, target=%s, other=%s, unmatched=%s",
        target_key,
        report.total_devices,
        report.already_matched_to_target,
        report.matched_to_other,
        report.unmatched,
    )
    return report


def _classify(target_key: TargetKey, rows: Sequence[ExistingMatch]) -> MatchClassification:
    if not rows:
        return MatchClassification.UNMATCHED
    if any(row.target_key != target_key for row in rows):
        return MatchClassification.MATCHED_TO_OTHER
    return MatchClassification.ALREADY_MATCHED_TO_TARGET


def _conflict_for(
    target_key: TargetKey,
    serial: EquipmentSerial,
    item: BasketItem,
    rows: Sequence[ExistingMatch],
) -> Conflict:
    group = item.group
    return Conflict(
        equipment_serial=serial,
        management_number=group.management_number,
        device=DeviceInfo(
            institution_name=group.institution_name,
            address=group.address,
            installation_position=group.location_detail(serial) or None,
        ),
        existing_matches=tuple(
            ExistingMatchView(
                target_key=row.target_key,
                institution_name=row.institution_name,
                management_number=row.management_number or group.management_number,
                matched_at=row.matched_at,
                is_target_match=row.target_key == target_key,
            )
            for row in rows
        ),
    )


@dataclass(slots=True)
class ExistingMatchConflictChecker:
    """Conflict checker backed by a local existing-match query."""

    query: ExistingMatchQuery

    def __call__(
        self,
        target_key: TargetKey,
        items: Sequence[BasketItem],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> ConflictReport:
        return check_conflicts(target_key, items, year, fetch_existing=self.query, timeout=timeout)
