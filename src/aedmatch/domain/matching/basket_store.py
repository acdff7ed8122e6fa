"""In-memory baskets of provisional equipment claims, one per institution.

Operations are synchronous. Removing something that is not there is a no-op;
only operations that would break an item invariant raise
``BasketValidationError``, and they leave the basket unchanged.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError
from aedmatch.domain.model import BasketItem, FullMatch, PartialMatch

if TYPE_CHECKING:
    from collections.abc import Iterable

    from aedmatch.domain.model import (
        EquipmentGroup,
        EquipmentSerial,
        ManagementNumber,
        TargetKey,
    )

log = getLogger(__name__)

type BasketListener = Callable[[TargetKey, tuple[BasketItem, ...]], None]


@dataclass(frozen=True, slots=True)
class BasketSummary:
    item_count: int
    total_equipment: int
    selected_equipment: int


class BasketStore:
    """Per-institution baskets keyed by management number, in insertion order."""

    def __init__(self) -> None:
        self._baskets: dict[TargetKey, dict[ManagementNumber, BasketItem]] = {}
        self._listeners: list[BasketListener] = []

    # Listeners -----------------------------------------------------------------

    def subscribe(self, listener: BasketListener) -> Callable[[], None]:
        """Register a basket-changed callback; returns a function that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Queries -------------------------------------------------------------------

    def target_keys(self) -> tuple[TargetKey, ...]:
        return tuple(key for key, basket in self._baskets.items() if basket)

    def items(self, target_key: TargetKey) -> tuple[BasketItem, ...]:
        return tuple(self._baskets.get(target_key, {}).values())

    def get(self, target_key: TargetKey, management_number: ManagementNumber) -> BasketItem | None:
        return self._baskets.get(target_key, {}).get(management_number)

    def management_numbers(self, target_key: TargetKey) -> tuple[ManagementNumber, ...]:
        return tuple(self._baskets.get(target_key, {}))

    def selected_serials(self, target_key: TargetKey) -> tuple[EquipmentSerial, ...]:
        seen: set[EquipmentSerial] = set()
        ordered: list[EquipmentSerial] = []
        for item in self.items(target_key):
            for serial in item.effective_serials:
                if serial in seen:
                    continue
                seen.add(serial)
                ordered.append(serial)
        return tuple(ordered)

    def baskets_containing(
        self,
        management_number: ManagementNumber,
        *,
        exclude: TargetKey | None = None,
    ) -> tuple[TargetKey, ...]:
        """Other baskets that also hold ``management_number``.

        Baskets are independent, so the same group may sit in several of them
        until one is committed.
        """

        return tuple(
            key
            for key, basket in self._baskets.items()
            if key != exclude and management_number in basket
        )

    def summary(self, target_key: TargetKey) -> BasketSummary:
        items = self.items(target_key)
        return BasketSummary(
            item_count=len(items),
            total_equipment=sum(item.group.equipment_count for item in items),
            selected_equipment=sum(len(item.effective_serials) for item in items),
        )

    # Whole-group operations ----------------------------------------------------

    def add_group(self, target_key: TargetKey, group: EquipmentGroup) -> bool:
        """Claim the whole group; returns ``False`` if it was already in the basket."""

        basket = self._baskets.setdefault(target_key, {})
        if group.management_number in basket:
            return False
        basket[group.management_number] = BasketItem(target_key=target_key, group=group)
        log.debug("Added %s to basket of %s", group.management_number, target_key)
        self._notify(target_key)
        return True

    def add_groups(self, target_key: TargetKey, groups: Iterable[EquipmentGroup]) -> int:
        """Claim several whole groups, skipping those already present."""

        basket = self._baskets.setdefault(target_key, {})
        added = 0
        for group in groups:
            if group.management_number in basket:
                continue
            basket[group.management_number] = BasketItem(target_key=target_key, group=group)
            added += 1
        if added:
            log.debug("Added %s groups to basket of %s", added, target_key)
            self._notify(target_key)
        return added

    def remove_group(self, target_key: TargetKey, management_number: ManagementNumber) -> bool:
        basket = self._baskets.get(target_key)
        if not basket or management_number not in basket:
            return False
        del basket[management_number]
        self._notify(target_key)
        return True

    # Serial-level operations ---------------------------------------------------

    def add_serial(
        self,
        target_key: TargetKey,
        group: EquipmentGroup,
        serial: EquipmentSerial,
    ) -> None:
        """Add one serial to a partial claim, creating the item if needed."""

        if not group.has_serial(serial):
            raise BasketValidationError(
                f"Serial {serial} does not belong to management number {group.management_number}"
            )
        basket = self._baskets.setdefault(target_key, {})
        existing = basket.get(group.management_number)
        if existing is None:
            basket[group.management_number] = BasketItem(
                target_key=target_key,
                group=group,
                selection=PartialMatch(frozenset({serial})),
            )
            self._notify(target_key)
            return

        if isinstance(existing.selection, FullMatch):
            raise BasketValidationError(
                f"Management number {group.management_number} is already claimed in full"
            )
        if serial in existing.selection.serials:
            return
        basket[group.management_number] = existing.with_selection(
            PartialMatch(existing.selection.serials | {serial})
        )
        self._notify(target_key)

    def remove_serial(
        self,
        target_key: TargetKey,
        management_number: ManagementNumber,
        serial: EquipmentSerial,
    ) -> None:
        """Withdraw one serial; a full claim becomes partial, an empty one disappears."""

        basket = self._baskets.get(target_key)
        existing = basket.get(management_number) if basket else None
        if basket is None or existing is None:
            return
        current = existing.selection.serials_of(existing.group)
        if serial not in current:
            return
        remaining = current - {serial}
        if not remaining:
            del basket[management_number]
        else:
            basket[management_number] = existing.with_selection(PartialMatch(remaining))
        self._notify(target_key)

    # Clearing ------------------------------------------------------------------

    def clear(self, target_key: TargetKey) -> None:
        basket = self._baskets.pop(target_key, None)
        if basket:
            log.debug("Cleared basket of %s (%s items)", target_key, len(basket))
            self._notify(target_key)

    def clear_all(self) -> None:
        for target_key in self.target_keys():
            self.clear(target_key)

    def _notify(self, target_key: TargetKey) -> None:
        items = self.items(target_key)
        for listener in tuple(self._listeners):
            listener(target_key, items)
