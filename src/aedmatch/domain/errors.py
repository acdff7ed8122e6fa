"""Error taxonomy for the matching engine.

``BasketValidationError`` and ``StrategyAmbiguous`` are never retryable.
``ConflictCheckFailure`` always is; ``CommitFailure`` says so per instance.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aedmatch.domain.matching.plan import ResolutionPlan


class MatchingError(RuntimeError):
    """Base class for every error raised by the matching engine."""

    retryable: bool = False


class BasketValidationError(MatchingError, ValueError):
    """Raised when a basket or override operation would break an invariant."""


class ConflictCheckFailure(MatchingError):
    """Raised when the existing-match lookup failed or timed out."""

    retryable = True

    def __init__(self, message: str, *, target_key: str | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.target_key = target_key
        self.timed_out = timed_out


class CommitFailure(MatchingError):
    """Raised when the match committer rejected or failed the final write."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class StrategyAmbiguous(MatchingError):
    """Raised when no resolution rule matched; indicates a defect, not user error."""

    def __init__(self, message: str, *, fallback: ResolutionPlan) -> None:
        super().__init__(message)
        self.fallback = fallback
