"""Basket, conflict and resolution stages of the matching engine."""

from __future__ import annotations

from .basket_store import BasketListener, BasketStore, BasketSummary
from .conflicts import (
    Conflict,
    ConflictReport,
    DeviceInfo,
    ExistingMatchConflictChecker,
    ExistingMatchView,
    check_conflicts,
)
from .plan import ResolutionPlan, Scenario, Strategy
from .resolve import (
    DEFAULT_RULES,
    ConflictReview,
    ResolutionState,
    StrategyRule,
    resolve_strategy,
)

__all__ = [
    "DEFAULT_RULES",
    "BasketListener",
    "BasketStore",
    "BasketSummary",
    "Conflict",
    "ConflictReport",
    "ConflictReview",
    "DeviceInfo",
    "ExistingMatchConflictChecker",
    "ExistingMatchView",
    "ResolutionPlan",
    "ResolutionState",
    "Scenario",
    "Strategy",
    "StrategyRule",
    "check_conflicts",
    "resolve_strategy",
]
