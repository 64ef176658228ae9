"""Shared bounded polling for asynchronous transcription jobs.

Every adapter that submits a job and waits for it uses `poll_until_complete`, so the
interval, attempt bound and caller deadline behave the same for all providers.
"""

import time
from typing import Callable

from loguru import logger

from config.errors import DeadlineExceeded, JobFailedError, PollingTimeoutError


COMPLETED = "completed"
ERROR = "error"


class Deadline:
    """Absolute monotonic deadline for one evaluation. `None` seconds means no limit."""

    def __init__(self, seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self, stage: str = "") -> None:
        if self.expired:
            raise DeadlineExceeded(f"Evaluation deadline exceeded{f' during {stage}' if stage else ''}")


def poll_until_complete(
    fetch_status: Callable[[], tuple[str, dict]],
    *,
    provider: str,
    interval: float,
    max_attempts: int,
    deadline: Deadline | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """Poll a job until it reports completed or error.

    Args:
        fetch_status: Callable returning (status, payload); status is normalized to
            'completed', 'error', or any in-progress value
        provider: Provider name for errors and logs
        interval: Fixed seconds between checks
        max_attempts: Maximum number of status checks before giving up
        deadline: Caller-level deadline, checked before every attempt
        sleep: Injectable sleep for tests

    Returns:
        The payload returned alongside the 'completed' status

    Raises:
        JobFailedError: provider reported an error
        PollingTimeoutError: attempts exhausted
        DeadlineExceeded: caller deadline passed
    """
    for attempt in range(1, max_attempts + 1):
        if deadline is not None:
            deadline.check(f"{provider} polling")
        status, payload = fetch_status()
        if status == COMPLETED:
            logger.debug(f"{provider} job completed after {attempt} status check(s)")
            return payload
        if status == ERROR:
            message = payload.get("error") or payload.get("error_message") or "unknown error"
            raise JobFailedError(provider, f"job failed: {message}")
        if attempt < max_attempts:
            sleep(interval)

    raise PollingTimeoutError(provider, f"job not completed after {max_attempts} status checks")
