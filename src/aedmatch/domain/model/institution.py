"""Institutions, registered devices and their persisted assignments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aedmatch.domain.errors import BasketValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from .primitives import EquipmentSerial, ManagementNumber, TargetKey


@dataclass(frozen=True, slots=True, kw_only=True)
class Institution:
    """A legally mandated installation target.

    ``unique_key`` is an optional tag that disambiguates institutions sharing a
    name; candidate sources look for it in device location text.
    """

    target_key: TargetKey
    name: str
    sido: str | None = None
    gugun: str | None = None
    division: str | None = None
    sub_division: str | None = None
    address: str | None = None
    unique_key: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class Device:
    """One registered AED as listed in the device registry."""

    equipment_serial: EquipmentSerial
    management_number: ManagementNumber
    institution_name: str = ""
    address: str = ""
    installation_position: str | None = None
    sido: str | None = None
    gugun: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class EquipmentGroup:
    """Devices registered under one management number.

    ``is_matched`` reflects persisted state at fetch time and is never updated
    in place. ``confidence`` comes from the candidate source, 0-100 or absent.
    """

    management_number: ManagementNumber
    institution_name: str
    address: str = ""
    equipment_serials: tuple[EquipmentSerial, ...]
    location_details: Mapping[EquipmentSerial, str] = field(
        default_factory=dict["EquipmentSerial", "str"]
    )
    confidence: float | None = None
    is_matched: bool = False

    def __post_init__(self) -> None:
        if not self.management_number:
            raise BasketValidationError("Equipment group requires a management number")
        if not self.equipment_serials:
            raise BasketValidationError(
                f"Equipment group {self.management_number} has no equipment serials"
            )
        if len(set(self.equipment_serials)) != len(self.equipment_serials):
            raise BasketValidationError(
                f"Equipment group {self.management_number} lists a serial twice"
            )
        if self.confidence is not None and not 0 <= self.confidence <= 100:
            raise BasketValidationError(
                f"Confidence must be between 0 and 100, got {self.confidence}"
            )

    @property
    def equipment_count(self) -> int:
        return len(self.equipment_serials)

    def has_serial(self, serial: EquipmentSerial) -> bool:
        return serial in self.equipment_serials

    def location_detail(self, serial: EquipmentSerial) -> str | None:
        return self.location_details.get(serial)

    @classmethod
    def from_devices(
        cls,
        devices: list[Device] | tuple[Device, ...],
        *,
        confidence: float | None = None,
        is_matched: bool = False,
    ) -> EquipmentGroup:
        """Build a group from registry rows that share one management number."""

        if not devices:
            raise BasketValidationError("Cannot build an equipment group without devices")
        first = devices[0]
        return cls(
            management_number=first.management_number,
            institution_name=first.institution_name,
            address=first.address,
            equipment_serials=tuple(device.equipment_serial for device in devices),
            location_details={
                device.equipment_serial: device.installation_position or ""
                for device in devices
            },
            confidence=confidence,
            is_matched=is_matched,
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class ExistingMatch:
    """Persisted fact: a serial is assigned to an institution for a target-list year."""

    equipment_serial: EquipmentSerial
    target_key: TargetKey
    management_number: ManagementNumber
    matched_at: datetime
    institution_name: str = ""
