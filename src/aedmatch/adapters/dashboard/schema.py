"""Pydantic models describing the dashboard compliance API payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aedmatch.domain.model import MatchClassification


def _none_to_blank(value: object) -> object:
    return "" if value is None else value


class DashboardBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EquipmentDetailPayload(DashboardBaseModel):
    serial: str
    location_detail: str = ""

    _normalize_detail = field_validator("location_detail", mode="before")(_none_to_blank)


class CandidatePayload(DashboardBaseModel):
    management_number: str
    institution_name: str = ""
    address: str = ""
    sido: str | None = None
    gugun: str | None = None
    equipment_count: int | None = None
    equipment_serials: list[str]
    equipment_details: list[EquipmentDetailPayload] = Field(default_factory=list)
    confidence: float | None = None
    is_matched: bool = False
    matched_to: str | None = None
    matched_institution_name: str | None = None

    _normalize_text = field_validator("institution_name", "address", mode="before")(
        _none_to_blank
    )


class CandidatesResponse(DashboardBaseModel):
    auto_suggestions: list[CandidatePayload] = Field(default_factory=list)
    search_results: list[CandidatePayload] = Field(default_factory=list)


class DeviceInfoPayload(DashboardBaseModel):
    institution_name: str = ""
    address: str = ""
    installation_position: str | None = None


class ExistingMatchPayload(DashboardBaseModel):
    target_key: str
    institution_name: str = ""
    management_number: str = ""
    matched_at: datetime
    is_target_match: bool


class ConflictPayload(DashboardBaseModel):
    equipment_serial: str
    management_number: str = ""
    device_info: DeviceInfoPayload = Field(default_factory=DeviceInfoPayload)
    existing_matches: list[ExistingMatchPayload] = Field(default_factory=list)


class CheckExistingMatchesRequest(DashboardBaseModel):
    target_key: str
    management_numbers: list[str]
    year: int


class CheckExistingMatchesResponse(DashboardBaseModel):
    has_conflicts: bool = False
    total_devices: int = 0
    already_matched_to_target: int = 0
    matched_to_other: int = 0
    unmatched: int = 0
    conflicts: list[ConflictPayload] = Field(default_factory=list)
    classifications: dict[str, MatchClassification] | None = None


class MatchBasketRequest(DashboardBaseModel):
    target_key: str
    year: int
    management_numbers: list[str]
    strategy: str
    equipment_serials: list[str] | None = None
    removed_from_existing: list[str] = Field(default_factory=list)
    removed_from_new: list[str] = Field(default_factory=list)


class MatchBasketResponse(DashboardBaseModel):
    success: bool = True
    strategy: str | None = None
    matched_count: int
    equipment_count: int
    newly_matched: int = 0
    already_matched: int = 0
    deleted_previous: int = 0


class UnmatchBasketRequest(DashboardBaseModel):
    target_key: str
    year: int
    reason: str | None = None


class UnmatchBasketResponse(DashboardBaseModel):
    success: bool = True
    unmatched_count: int
    equipment_count: int


class ErrorResponse(DashboardBaseModel):
    error: str
    details: str | None = None
