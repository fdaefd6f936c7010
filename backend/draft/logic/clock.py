"""
Turn clock for the pick currently on the clock.

The deadline itself lives in the session (ActivePhase.timer_expires_at); the
TurnClock only computes deadlines and reads them against an injected wall
clock. Reading never mutates anything, so any number of pollers can call
remaining() concurrently. Expiry is not self-triggering: an external driver
(see draft.session.expiry) observes remaining() == 0 and invokes the expiry
transition through the session manager.
"""

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of timezone-aware wall-clock time."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)


class TurnClock:
    """Arm and read per-pick deadlines against a wall clock."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def now(self) -> datetime:
        return self._clock.now()

    def arm(self, duration_seconds: float, *, at: datetime | None = None) -> datetime:
        """Return the deadline for a pick that starts now (or at ``at``)."""
        if duration_seconds <= 0:
            raise ValueError(f"pick timer must be positive, got {duration_seconds}")
        start = at if at is not None else self.now()
        return start + timedelta(seconds=duration_seconds)

    def remaining(self, expires_at: datetime | None, *, at: datetime | None = None) -> float:
        """Seconds until the deadline, never negative. 0 when no pick is armed."""
        if expires_at is None:
            return 0.0
        now = at if at is not None else self.now()
        return max(0.0, (expires_at - now).total_seconds())

    def expired(self, expires_at: datetime | None, *, at: datetime | None = None, grace_seconds: float = 0) -> bool:
        """True once ``at`` is past the deadline plus the grace period."""
        if expires_at is None:
            return False
        now = at if at is not None else self.now()
        return now > expires_at + timedelta(seconds=grace_seconds)
