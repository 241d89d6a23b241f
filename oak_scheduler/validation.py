"""Admissibility rules for schedules and transfers.

Every check here is local: a request that fails validation never reaches
the network.
"""

from __future__ import annotations

import logging
from typing import Sequence

from oak_scheduler.config import SECONDS_PER_HOUR, ChainProfile
from oak_scheduler.errors import ValidationFailed, ValidationRule
from oak_scheduler.models import ScheduleRequest, TransferPayload
from oak_scheduler.timeutils import Clock, next_hour, to_epoch_seconds, utc_now

LOGGER = logging.getLogger(__name__)


class ScheduleValidator:
    """Checks timestamps and transfer parameters against a chain profile."""

    def __init__(self, profile: ChainProfile, clock: Clock = utc_now) -> None:
        self._profile = profile
        self._clock = clock

    def validate_timestamps(self, timestamps: Sequence[int]) -> None:
        """Validate epoch-second timestamps.

        Rules, first violation in input order wins:
        1. between one and ``recurring_task_limit`` entries
        2. not before the next full hour
        3. aligned to an hour boundary
        4. not after now + the chain's scheduling horizon
        """
        if not timestamps:
            raise ValidationFailed(ValidationRule.EMPTY_SCHEDULE, "At least one execution time is required")
        limit = self._profile.recurring_task_limit
        if len(timestamps) > limit:
            raise ValidationFailed(
                ValidationRule.TOO_MANY_TASKS,
                f"Recurring task length cannot exceed {limit} (got {len(timestamps)})",
            )

        now = to_epoch_seconds(self._clock())
        earliest = next_hour(now)
        latest = now + self._profile.scheduling_horizon_seconds
        for timestamp in timestamps:
            if timestamp < earliest:
                raise ValidationFailed(
                    ValidationRule.TIMESTAMP_IN_PAST,
                    f"Scheduled timestamp {timestamp} is before the next available hour {earliest}",
                )
            if timestamp % SECONDS_PER_HOUR != 0:
                raise ValidationFailed(
                    ValidationRule.NOT_HOUR_ALIGNED,
                    f"Timestamp {timestamp} is not on an hour boundary",
                )
            if timestamp > latest:
                raise ValidationFailed(
                    ValidationRule.TOO_FAR_IN_FUTURE,
                    f"Timestamp {timestamp} is later than {latest}",
                )

    def validate_transfer_params(self, amount: int, sender: str, recipient: str) -> None:
        minimum = self._profile.minimum_transfer_amount
        if amount < minimum:
            raise ValidationFailed(
                ValidationRule.AMOUNT_TOO_LOW,
                f"Amount {amount} is below the minimum transferable amount {minimum}",
            )
        if sender == recipient:
            raise ValidationFailed(ValidationRule.SELF_TRANSFER_NOT_ALLOWED, "Cannot send to self")

    def validate_provided_id(self, provided_id: str) -> None:
        if not provided_id or not provided_id.strip():
            raise ValidationFailed(ValidationRule.EMPTY_PROVIDED_ID, "Provided id must not be blank")

    def validate_request(self, sender: str, request: ScheduleRequest) -> None:
        """Run every rule that applies to the request's payload kind."""

        self.validate_provided_id(request.provided_id)
        self.validate_timestamps(request.timestamps)
        if isinstance(request.payload, TransferPayload):
            self.validate_transfer_params(request.payload.amount, sender, request.payload.recipient)
        LOGGER.debug(
            "Validated %s with %d execution times", request.provided_id, len(request.timestamps)
        )
