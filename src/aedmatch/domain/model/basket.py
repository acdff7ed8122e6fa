"""Provisional claims collected in an institution's basket.

A basket item selects either the whole equipment group (``FullMatch``) or a
non-empty subset of its serials (``PartialMatch``). There is no third state:
an empty selection is rejected on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError

if TYPE_CHECKING:
    from .institution import EquipmentGroup
    from .primitives import EquipmentSerial, ManagementNumber, TargetKey


@dataclass(frozen=True, slots=True)
class FullMatch:
    """Claim every serial in the group."""

    def serials_of(self, group: EquipmentGroup) -> frozenset[EquipmentSerial]:
        return frozenset(group.equipment_serials)


@dataclass(frozen=True, slots=True)
class PartialMatch:
    """Claim only the listed serials of the group."""

    serials: frozenset[EquipmentSerial]

    def __post_init__(self) -> None:
        if not self.serials:
            raise BasketValidationError("Partial match requires at least one serial")

    def serials_of(self, group: EquipmentGroup) -> frozenset[EquipmentSerial]:
        _ = group
        return self.serials


type Selection = FullMatch | PartialMatch

FULL_MATCH = FullMatch()


@dataclass(frozen=True, slots=True, kw_only=True)
class BasketItem:
    """One equipment group provisionally claimed for an institution."""

    target_key: TargetKey
    group: EquipmentGroup
    selection: Selection = FULL_MATCH

    def __post_init__(self) -> None:
        if isinstance(self.selection, PartialMatch):
            unknown = self.selection.serials - frozenset(self.group.equipment_serials)
            if unknown:
                raise BasketValidationError(
                    f"Serials {sorted(unknown)} do not belong to "
                    f"management number {self.group.management_number}"
                )

    @property
    def management_number(self) -> ManagementNumber:
        return self.group.management_number

    @property
    def confidence(self) -> float | None:
        return self.group.confidence

    @property
    def selected_serials(self) -> frozenset[EquipmentSerial] | None:
        """Explicit selection, or ``None`` when the whole group is claimed."""

        if isinstance(self.selection, PartialMatch):
            return self.selection.serials
        return None

    @property
    def effective_serials(self) -> tuple[EquipmentSerial, ...]:
        """Claimed serials in the group's registry order."""

        chosen = self.selection.serials_of(self.group)
        return tuple(serial for serial in self.group.equipment_serials if serial in chosen)

    @property
    def is_full(self) -> bool:
        return len(self.effective_serials) == self.group.equipment_count

    @property
    def is_partial(self) -> bool:
        return not self.is_full

    def with_selection(self, selection: Selection) -> BasketItem:
        return replace(self, selection=selection)
