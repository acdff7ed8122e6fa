"""Public domain model surface."""

from __future__ import annotations

from aedmatch.domain.model.audit import MatchLogEntry
from aedmatch.domain.model.basket import (
    FULL_MATCH,
    BasketItem,
    FullMatch,
    PartialMatch,
    Selection,
)
from aedmatch.domain.model.enums import MatchAction, MatchClassification, MatchingMethod
from aedmatch.domain.model.institution import Device, EquipmentGroup, ExistingMatch, Institution
from aedmatch.domain.model.primitives import EquipmentSerial, ManagementNumber, TargetKey, Year

__all__ = [
    "FULL_MATCH",
    "BasketItem",
    "Device",
    "EquipmentGroup",
    "EquipmentSerial",
    "ExistingMatch",
    "FullMatch",
    "Institution",
    "ManagementNumber",
    "MatchAction",
    "MatchClassification",
    "MatchLogEntry",
    "MatchingMethod",
    "PartialMatch",
    "Selection",
    "TargetKey",
    "Year",
]
