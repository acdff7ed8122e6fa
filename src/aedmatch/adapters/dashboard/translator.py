"""Translate dashboard payloads into domain objects."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from aedmatch.domain.matching.conflicts import (
    Conflict,
    ConflictReport,
    DeviceInfo,
    ExistingMatchView,
)
from aedmatch.domain.model import EquipmentGroup, MatchClassification
from aedmatch.domain.ports.fetching import CandidateFetchResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aedmatch.domain.model import EquipmentSerial, TargetKey, Year

    from .schema import (
        CandidatePayload,
        CandidatesResponse,
        CheckExistingMatchesResponse,
        ConflictPayload,
    )

log = getLogger(__name__)


def parse_equipment_group(payload: CandidatePayload) -> EquipmentGroup:
    details = {detail.serial: detail.location_detail for detail in payload.equipment_details}
    return EquipmentGroup(
        management_number=payload.management_number,
        institution_name=payload.institution_name,
        address=payload.address,
        equipment_serials=tuple(dict.fromkeys(payload.equipment_serials)),
        location_details=details,
        confidence=payload.confidence,
        is_matched=payload.is_matched,
    )


def parse_candidates(response: CandidatesResponse) -> CandidateFetchResult:
    return CandidateFetchResult(
        auto_suggestions=_parse_groups(response.auto_suggestions),
        search_results=_parse_groups(response.search_results),
    )


def parse_conflict_report(
    response: CheckExistingMatchesResponse,
    *,
    target_key: TargetKey,
    year: Year,
    serials: Sequence[EquipmentSerial],
) -> ConflictReport:
    """Build a report covering exactly ``serials``.

    When the payload carries no per-serial classification, serials outside the
    conflict list count as unmatched, unless the payload reports none unmatched,
    in which case they count as already matched to the target.
    """

    conflicts = {conflict.equipment_serial: conflict for conflict in response.conflicts}
    default = (
        MatchClassification.ALREADY_MATCHED_TO_TARGET
        if response.unmatched == 0 and response.already_matched_to_target > 0
        else MatchClassification.UNMATCHED
    )
    provided = response.classifications or {}

    classifications: dict[EquipmentSerial, MatchClassification] = {}
    for serial in dict.fromkeys(serials):
        if serial in conflicts:
            classifications[serial] = MatchClassification.MATCHED_TO_OTHER
        else:
            classifications[serial] = provided.get(serial, default)

    return ConflictReport(
        target_key=target_key,
        year=year,
        classifications=classifications,
        conflicts=tuple(
            _parse_conflict(conflicts[serial])
            for serial in classifications
            if serial in conflicts
        ),
    )


def _parse_groups(payloads: Sequence[CandidatePayload]) -> list[EquipmentGroup]:
    groups: list[EquipmentGroup] = []
    for payload in payloads:
        if not payload.equipment_serials:
            log.warning("Skipping candidate %s without equipment", payload.management_number)
            continue
        groups.append(parse_equipment_group(payload))
    return groups


def _parse_conflict(payload: ConflictPayload) -> Conflict:
    return Conflict(
        equipment_serial=payload.equipment_serial,
        management_number=payload.management_number,
        device=DeviceInfo(
            institution_name=payload.device_info.institution_name,
            address=payload.device_info.address,
            installation_position=payload.device_info.installation_position,
        ),
        existing_matches=tuple(
            ExistingMatchView(
                target_key=match.target_key,
                institution_name=match.institution_name,
                management_number=match.management_number or payload.management_number,
                matched_at=match.matched_at,
                is_target_match=match.is_target_match,
            )
            for match in payload.existing_matches
        ),
    )
