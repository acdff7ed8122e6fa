"""Ports for persisting institutions, devices and their matches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from aedmatch.domain.model import Device, Institution, MatchLogEntry

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from aedmatch.domain.model import (
        EquipmentSerial,
        ExistingMatch,
        ManagementNumber,
        MatchingMethod,
        TargetKey,
        Year,
    )


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class InstitutionRepository(Repository[Institution], Protocol):
    """Persistence contract for the mandated-institution target list."""

    def get(self, target_key: TargetKey) -> Institution | None: ...

    def find(self, *, sido: str | None = None, gugun: str | None = None) -> Sequence[Institution]: ...


@runtime_checkable
class DeviceRepository(Repository[Device], Protocol):
    """Persistence contract for the device registry."""

    def for_management_numbers(
        self, management_numbers: Sequence[ManagementNumber]
    ) -> Sequence[Device]: ...

    def in_region(
        self,
        *,
        sido: str | None = None,
        gugun: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> Sequence[Device]: ...


@runtime_checkable
class ExistingMatchRepository(Protocol):
    """Persistence contract for device-to-institution assignments."""

    def for_serials(
        self, serials: Sequence[EquipmentSerial], *, year: Year, timeout: float | None = None
    ) -> Sequence[ExistingMatch]: ...

    def for_target(self, target_key: TargetKey, *, year: Year) -> Sequence[ExistingMatch]: ...

    def add(
        self,
        *,
        equipment_serial: EquipmentSerial,
        target_key: TargetKey,
        year: Year,
        matched_at: datetime,
        matched_by: str | None = None,
        matching_method: MatchingMethod,
    ) -> None: ...

    def delete_other_claims(
        self,
        serials: Sequence[EquipmentSerial],
        *,
        keep_target_key: TargetKey,
        year: Year,
    ) -> int: ...

    def delete_for_target(self, target_key: TargetKey, *, year: Year) -> int: ...

    def matched_counts(self, *, year: Year) -> dict[TargetKey, int]: ...


@runtime_checkable
class MatchLogRepository(Repository[MatchLogEntry], Protocol):
    """Append-only audit trail of match decisions."""

    def for_target(self, target_key: TargetKey, *, year: Year) -> Sequence[MatchLogEntry]: ...
