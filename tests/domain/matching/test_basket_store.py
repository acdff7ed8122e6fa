from __future__ import annotations

import pytest

from aedmatch.domain.errors import BasketValidationError
from aedmatch.domain.matching import BasketStore
from aedmatch.domain.model import BasketItem, FullMatch, PartialMatch
from tests.helpers.matching import make_group


def test_add_group_is_idempotent() -> None:
    store = BasketStore()
    group = make_group()

    assert store.add_group("T-1", group) is True
    assert store.add_group("T-1", group) is False

    items = store.items("T-1")
    assert len(items) == 1
    assert isinstance(items[0].selection, FullMatch)
    assert items[0].effective_serials == ("SN-1", "SN-2")


def test_add_groups_skips_management_numbers_already_present() -> None:
    store = BasketStore()
    first = make_group("MN-1", ("A",))
    second = make_group("MN-2", ("B", "C"))
    store.add_group("T-1", first)

    added = store.add_groups("T-1", [first, second, second])

    assert added == 1
    assert store.management_numbers("T-1") == ("MN-1", "MN-2")


def test_add_serial_creates_partial_item_and_accumulates() -> None:
    store = BasketStore()
    group = make_group(serials=("SN-1", "SN-2", "SN-3"))

    store.add_serial("T-1", group, "SN-3")
    store.add_serial("T-1", group, "SN-1")
    store.add_serial("T-1", group, "SN-1")

    item = store.get("T-1", group.management_number)
    assert item is not None
    assert item.selected_serials == frozenset({"SN-1", "SN-3"})
    assert item.effective_serials == ("SN-1", "SN-3")
    assert item.is_partial


def test_add_serial_rejects_unknown_serial_and_leaves_basket_unchanged() -> None:
    store = BasketStore()
    group = make_group()

    with pytest.raises(BasketValidationError):
        store.add_serial("T-1", group, "SN-404")

    assert store.items("T-1") == ()


def test_add_serial_on_full_match_is_rejected() -> None:
    store = BasketStore()
    group = make_group()
    store.add_group("T-1", group)

    with pytest.raises(BasketValidationError):
        store.add_serial("T-1", group, "SN-1")

    item = store.get("T-1", group.management_number)
    assert item is not None
    assert isinstance(item.selection, FullMatch)


def test_remove_serial_from_full_match_becomes_partial() -> None:
    store = BasketStore()
    group = make_group(serials=("SN-1", "SN-2", "SN-3"))
    store.add_group("T-1", group)

    store.remove_serial("T-1", group.management_number, "SN-2")

    item = store.get("T-1", group.management_number)
    assert item is not None
    assert item.selection == PartialMatch(frozenset({"SN-1", "SN-3"}))


def test_removing_last_serial_removes_item() -> None:
    store = BasketStore()
    group = make_group(serials=("SN-1",))
    store.add_group("T-1", group)

    store.remove_serial("T-1", group.management_number, "SN-1")

    assert store.items("T-1") == ()


def test_removing_only_selected_serial_drops_partial_item() -> None:
    store = BasketStore()
    group = make_group()
    store.add_serial("T-1", group, "SN-1")
    store.remove_serial("T-1", group.management_number, "SN-1")

    assert store.get("T-1", group.management_number) is None


def test_removals_of_missing_entries_are_no_ops() -> None:
    store = BasketStore()
    group = make_group()
    store.add_serial("T-1", group, "SN-1")
    notifications: list[str] = []
    store.subscribe(lambda target_key, _items: notifications.append(target_key))

    assert store.remove_group("T-1", "MN-404") is False
    assert store.remove_group("T-9", group.management_number) is False
    store.remove_serial("T-1", group.management_number, "SN-2")
    store.remove_serial("T-9", group.management_number, "SN-1")
    store.clear("T-9")

    assert notifications == []
    assert len(store.items("T-1")) == 1


def test_clear_only_affects_one_institution() -> None:
    store = BasketStore()
    group = make_group()
    store.add_group("T-1", group)
    store.add_group("T-2", group)

    store.clear("T-1")

    assert store.items("T-1") == ()
    assert len(store.items("T-2")) == 1
    assert store.target_keys() == ("T-2",)


def test_clear_all_empties_every_basket() -> None:
    store = BasketStore()
    store.add_group("T-1", make_group("MN-1"))
    store.add_group("T-2", make_group("MN-2"))

    store.clear_all()

    assert store.target_keys() == ()


def test_same_group_may_sit_in_several_baskets() -> None:
    store = BasketStore()
    group = make_group()
    store.add_group("T-1", group)
    store.add_group("T-2", group)
    store.add_group("T-3", make_group("MN-999"))

    assert store.baskets_containing(group.management_number, exclude="T-1") == ("T-2",)


def test_summary_and_selected_serials() -> None:
    store = BasketStore()
    store.add_group("T-1", make_group("MN-1", ("A", "B")))
    store.add_serial("T-1", make_group("MN-2", ("C", "D", "E")), "E")

    summary = store.summary("T-1")

    assert summary.item_count == 2
    assert summary.total_equipment == 5
    assert summary.selected_equipment == 3
    assert store.selected_serials("T-1") == ("A", "B", "E")


def test_listeners_receive_current_items_and_can_unsubscribe() -> None:
    store = BasketStore()
    seen: list[tuple[str, tuple[BasketItem, ...]]] = []
    unsubscribe = store.subscribe(lambda target_key, items: seen.append((target_key, items)))

    store.add_group("T-1", make_group())
    unsubscribe()
    store.clear("T-1")

    assert len(seen) == 1
    target_key, items = seen[0]
    assert target_key == "T-1"
    assert [item.management_number for item in items] == ["MN-100"]


def test_partial_match_requires_serials() -> None:
    with pytest.raises(BasketValidationError):
        PartialMatch(frozenset())


def test_basket_item_rejects_foreign_serials() -> None:
    with pytest.raises(BasketValidationError):
        BasketItem(
            target_key="T-1",
            group=make_group(),
            selection=PartialMatch(frozenset({"SN-9"})),
        )


def test_removing_serials_one_by_one_from_full_match() -> None:
    store = BasketStore()
    group = make_group(serials=("A", "B", "C"))
    store.add_group("T-1", group)

    store.remove_serial("T-1", group.management_number, "A")
    store.remove_serial("T-1", group.management_number, "B")

    item = store.get("T-1", group.management_number)
    assert item is not None
    assert item.selected_serials == frozenset({"C"})

    store.remove_serial("T-1", group.management_number, "C")

    assert store.get("T-1", group.management_number) is None
