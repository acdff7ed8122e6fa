"""HTTP client for the dashboard compliance API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ValidationError

from aedmatch.adapters.http_resilience import ResilientClient
from aedmatch.config.dashboard import DashboardConfig, get_dashboard_config
from aedmatch.domain.errors import CommitFailure, ConflictCheckFailure
from aedmatch.domain.ports.committing import CommitResult, UnmatchResult

from .schema import (
    CandidatesResponse,
    CheckExistingMatchesRequest,
    CheckExistingMatchesResponse,
    ErrorResponse,
    MatchBasketRequest,
    MatchBasketResponse,
    UnmatchBasketRequest,
    UnmatchBasketResponse,
)
from .translator import parse_candidates, parse_conflict_report

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from aedmatch.config.http_resilience import ResilienceConfig
    from aedmatch.domain.matching.conflicts import ConflictReport
    from aedmatch.domain.model import BasketItem, TargetKey, Year
    from aedmatch.domain.ports.committing import CommitRequest, UnmatchRequest
    from aedmatch.domain.ports.fetching import CandidateFetchResult

log = getLogger(__name__)

CANDIDATES_PATH = "/api/compliance/management-number-candidates"
CHECK_EXISTING_MATCHES_PATH = "/api/compliance/check-existing-matches"
MATCH_BASKET_PATH = "/api/compliance/match-basket"


class DashboardAPIError(RuntimeError):
    """Raised when the dashboard answers with an unexpected status or payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class _DashboardEndpoint:
    config: DashboardConfig = field(default_factory=get_dashboard_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    @property
    def resilience(self) -> ResilienceConfig:
        headers = dict(self.config.resilience.default_headers or {})
        headers.setdefault("Authorization", f"Bearer {self.config.api_token}")
        headers.setdefault("Accept", "application/json")
        return replace(
            self.config.resilience,
            base_url=self.config.resilience.base_url or self.config.base_url,
            default_headers=headers,
        )

    def _run[T](self, call: Callable[[ResilientClient], Awaitable[T]]) -> T:
        async def runner() -> T:
            async with self.client_factory(self.resilience) as client:
                return await call(client)

        return asyncio.run(runner())


@dataclass(slots=True)
class DashboardCandidateSource(_DashboardEndpoint):
    def __call__(
        self,
        target_key: TargetKey,
        *,
        year: Year,
        include_all_region: bool = False,
        include_matched: bool = False,
        search: str | None = None,
    ) -> CandidateFetchResult:
        params: dict[str, str | int] = {
            "target_key": target_key,
            "year": year,
            "include_all_region": "true" if include_all_region else "false",
            "include_matched": "true" if include_matched else "false",
        }
        if search:
            params["search"] = search

        async def call(client: ResilientClient) -> httpx.Response:
            return await client.get(CANDIDATES_PATH, params=httpx.QueryParams(params))

        response = self._run(call)
        _raise_for_error(response)
        return parse_candidates(_validate(CandidatesResponse, response))


@dataclass(slots=True)
class DashboardConflictChecker(_DashboardEndpoint):
    """Conflict checker backed by the dashboard's existing-match check."""

    def __call__(
        self,
        target_key: TargetKey,
        items: Sequence[BasketItem],
        *,
        year: Year,
        timeout: float | None = None,
    ) -> ConflictReport:
        serials = [serial for item in items for serial in item.effective_serials]
        body = CheckExistingMatchesRequest(
            target_key=target_key,
            management_numbers=[item.management_number for item in items],
            year=year,
        )

        async def call(client: ResilientClient) -> httpx.Response:
            if timeout is None:
                return await client.post(CHECK_EXISTING_MATCHES_PATH, json=body.model_dump())
            return await client.post(
                CHECK_EXISTING_MATCHES_PATH, json=body.model_dump(), timeout=timeout
            )

        try:
            response = self._run(call)
        except httpx.TimeoutException as exc:
            raise ConflictCheckFailure(
                "Existing match check timed out", target_key=target_key, timed_out=True
            ) from exc
        except httpx.HTTPError as exc:
            raise ConflictCheckFailure(
                f"Existing match check failed: {exc}", target_key=target_key
            ) from exc

        if response.is_error:
            raise ConflictCheckFailure(
                f"Existing match check failed with status {response.status_code}: "
                f"{_error_message(response)}",
                target_key=target_key,
            )
        payload = _validate(CheckExistingMatchesResponse, response)
        return parse_conflict_report(payload, target_key=target_key, year=year, serials=serials)


@dataclass(slots=True)
class DashboardMatchCommitter(_DashboardEndpoint):
    def commit(self, request: CommitRequest) -> CommitResult:
        body = MatchBasketRequest(
            target_key=request.target_key,
            year=request.year,
            management_numbers=list(request.management_numbers),
            strategy=str(request.strategy),
            equipment_serials=(
                None if request.equipment_serials is None else list(request.equipment_serials)
            ),
            removed_from_existing=sorted(request.removed_from_existing),
            removed_from_new=sorted(request.removed_from_new),
        )

        async def call(client: ResilientClient) -> httpx.Response:
            return await client.post(MATCH_BASKET_PATH, json=body.model_dump())

        response = self._send_write(call)
        payload = _validate(MatchBasketResponse, response)
        return CommitResult(
            matched_management_numbers=payload.matched_count,
            matched_equipment=payload.equipment_count,
            newly_matched=payload.newly_matched,
            already_matched=payload.already_matched,
            evicted=payload.deleted_previous,
        )

    def unmatch(self, request: UnmatchRequest) -> UnmatchResult:
        body = UnmatchBasketRequest(
            target_key=request.target_key,
            year=request.year,
            reason=request.reason,
        )

        async def call(client: ResilientClient) -> httpx.Response:
            return await client.request("DELETE", MATCH_BASKET_PATH, json=body.model_dump())

        response = self._send_write(call)
        payload = _validate(UnmatchBasketResponse, response)
        return UnmatchResult(
            unmatched_count=payload.unmatched_count,
            equipment_count=payload.equipment_count,
        )

    def _send_write(
        self, call: Callable[[ResilientClient], Awaitable[httpx.Response]]
    ) -> httpx.Response:
        try:
            response = self._run(call)
        except httpx.HTTPError as exc:
            raise CommitFailure(f"Dashboard write failed: {exc}", retryable=True) from exc

        if response.is_error:
            status = response.status_code
            retryable = self.config.resilience.retry.write_is_retryable(status)
            message = _error_message(response)
            log.error(f"Dashboard write failed with status {status}: {message}")
            raise CommitFailure(message, retryable=retryable, status_code=status)
        return response


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_error:
        message = _error_message(response)
        log.error(f"Dashboard API error {response.status_code}: {message}")
        raise DashboardAPIError(message, status_code=response.status_code)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = ErrorResponse.model_validate(response.json())
    except (ValueError, ValidationError):
        return response.reason_phrase or f"HTTP {response.status_code}"
    if payload.details:
        return f"{payload.error} ({payload.details})"
    return payload.error


def _validate[TModel: BaseModel](model: type[TModel], response: httpx.Response) -> TModel:
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise DashboardAPIError(
            f"Unexpected dashboard response payload: {exc}", status_code=response.status_code
        ) from exc


if TYPE_CHECKING:
    from aedmatch.domain.ports.committing import MatchCommitter
    from aedmatch.domain.ports.fetching import CandidateSource, ConflictChecker

    _source_check: CandidateSource = DashboardCandidateSource()
    _checker_check: ConflictChecker = DashboardConflictChecker()
    _committer_check: MatchCommitter = DashboardMatchCommitter()
