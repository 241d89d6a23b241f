"""Exception taxonomy for scheduling, chain access and signing."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from oak_scheduler.models import DispatchOutcome


class ValidationRule(str, Enum):
    """Admissibility rules enforced before any network interaction."""

    EMPTY_SCHEDULE = "empty_schedule"
    TOO_MANY_TASKS = "too_many_tasks"
    TIMESTAMP_IN_PAST = "timestamp_in_past"
    NOT_HOUR_ALIGNED = "not_hour_aligned"
    TOO_FAR_IN_FUTURE = "too_far_in_future"
    AMOUNT_TOO_LOW = "amount_too_low"
    SELF_TRANSFER_NOT_ALLOWED = "self_transfer_not_allowed"
    EMPTY_PROVIDED_ID = "empty_provided_id"
    INVALID_EXTRINSIC = "invalid_extrinsic"


class SchedulingError(Exception):
    """Base class for all errors raised by this package."""


class ValidationFailed(SchedulingError):
    """A scheduling request broke one of the local admissibility rules."""

    def __init__(self, rule: ValidationRule, detail: str) -> None:
        super().__init__(detail)
        self.rule = rule
        self.detail = detail


class ChainUnavailable(SchedulingError, ConnectionError):
    """The chain node could not be reached."""


class RpcError(SchedulingError):
    """A remote call was rejected or answered with a malformed response."""

    def __init__(self, message: str, *, method: str | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code

    def __str__(self) -> str:
        prefix = f"{self.method}: " if self.method else ""
        suffix = f" (code {self.code})" if self.code is not None else ""
        return f"{prefix}{self.args[0]}{suffix}"


class SigningFailed(SchedulingError):
    """The injected signer could not produce a usable signature."""


class DispatchFailed(SchedulingError):
    """Raised on demand for a transaction the chain did not apply."""

    def __init__(self, outcome: DispatchOutcome) -> None:
        super().__init__(outcome.describe())
        self.outcome = outcome
