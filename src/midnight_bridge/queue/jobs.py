"""Submission job model and retry schedule."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..constants import DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_RETRY_TIMES, DEFAULT_TIMEOUT
from ..types import ContractCall


class JobState(str, Enum):
    PENDING = "pending"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def compute_backoff(
    base_delay: float,
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_attempts: int = DEFAULT_RETRY_TIMES,
) -> list[float]:
    """Delay before retry ``i`` is ``base_delay * multiplier**i``.

    There is one delay fewer than there are attempts.
    """
    return [base_delay * multiplier**i for i in range(max(0, max_attempts - 1))]


@dataclass
class SubmissionJob:
    """One queued, state-changing contract call."""

    contract_call: ContractCall
    uniqueness_key: str
    max_attempts: int = DEFAULT_RETRY_TIMES
    backoff_schedule: list[float] = field(default_factory=list)
    timeout: float = DEFAULT_TIMEOUT * 2
    attempts: int = 0
    state: JobState = JobState.PENDING
    last_error: str | None = None
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)

    def begin_attempt(self) -> int:
        self.attempts += 1
        self.state = JobState.SUBMITTING
        return self.attempts

    def can_retry(self) -> bool:
        return self.attempts < self.max_attempts

    def next_delay(self) -> float:
        """Backoff before the next attempt; the last entry repeats if the schedule is short."""
        if not self.backoff_schedule:
            return 0.0
        index = min(self.attempts - 1, len(self.backoff_schedule) - 1)
        return self.backoff_schedule[max(0, index)]

    def mark_confirmed(self) -> None:
        self.state = JobState.CONFIRMED
        self.last_error = None

    def mark_failed(self, reason: str) -> None:
        self.state = JobState.FAILED
        self.last_error = reason

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.CONFIRMED, JobState.FAILED)

    def describe(self) -> dict[str, Any]:
        """Log-safe summary; argument values are left out."""
        return {
            "job_id": self.job_id,
            "contract_address": self.contract_call.contract_address,
            "entrypoint": self.contract_call.entrypoint,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "state": self.state.value,
        }
