"""
Progressive lockout.

    OPEN --3 failures--> TEMPORARY (locked 5 min) --lock elapses--> TEMPORARY
    (second chance, counter back to 0) --3 failures--> PERMANENT

A correct password in OPEN or during the second chance returns the account to
OPEN with a zero counter. PERMANENT is only left through a password reset.

Everything here is pure: the caller reads a LockoutState off the account,
asks the policy what to do with one attempt, and writes the new state back.
"""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from models.account import LockoutStage


@dataclass(frozen=True)
class LockoutState:
    stage: LockoutStage = LockoutStage.OPEN
    failed_attempts: int = 0
    temporary_lock_until: Optional[datetime] = None
    permanently_locked: bool = False

    @classmethod
    def of(cls, account) -> "LockoutState":
        return cls(
            stage=LockoutStage(account.lockout_stage or LockoutStage.OPEN),
            failed_attempts=account.failed_login_attempts or 0,
            temporary_lock_until=account.temporary_lock_until,
            permanently_locked=bool(account.permanently_locked),
        )

    @classmethod
    def unlocked(cls) -> "LockoutState":
        return cls()

    def apply_to(self, account) -> None:
        account.lockout_stage = self.stage
        account.failed_login_attempts = self.failed_attempts
        account.temporary_lock_until = self.temporary_lock_until
        account.permanently_locked = self.permanently_locked


@dataclass(frozen=True)
class Accepted:
    pass


@dataclass(frozen=True)
class RejectedInvalidCredentials:
    remaining_attempts: int


@dataclass(frozen=True)
class RejectedTemporaryLock:
    remaining_minutes: int
    until: datetime


@dataclass(frozen=True)
class RejectedPermanentLock:
    pass


Outcome = Union[Accepted, RejectedInvalidCredentials, RejectedTemporaryLock, RejectedPermanentLock]


def remaining_minutes(until: datetime, now: datetime) -> int:
    seconds = (until - now).total_seconds()
    return max(math.ceil(seconds / 60), 1)


class LockoutPolicy:
    def __init__(self, max_attempts: int = 3, lock_duration: timedelta = timedelta(minutes=5)):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration

    def evaluate_attempt(
        self, state: LockoutState, password_matches: bool, now: datetime
    ) -> Tuple[Outcome, LockoutState]:
        if state.permanently_locked or state.stage is LockoutStage.PERMANENT:
            return RejectedPermanentLock(), state

        if state.temporary_lock_until is not None:
            if now < state.temporary_lock_until:
                until = state.temporary_lock_until
                return RejectedTemporaryLock(remaining_minutes(until, now), until), state
            # lock elapsed: second chance starts from zero, still in TEMPORARY
            state = replace(state, failed_attempts=0, temporary_lock_until=None)

        if password_matches:
            return Accepted(), LockoutState.unlocked()

        failures = state.failed_attempts + 1
        if failures < self.max_attempts:
            return (
                RejectedInvalidCredentials(self.max_attempts - failures),
                replace(state, failed_attempts=failures),
            )

        if state.stage is LockoutStage.OPEN:
            until = now + self.lock_duration
            locked = replace(
                state,
                stage=LockoutStage.TEMPORARY,
                failed_attempts=failures,
                temporary_lock_until=until,
            )
            return RejectedTemporaryLock(remaining_minutes(until, now), until), locked

        return RejectedPermanentLock(), replace(
            state,
            stage=LockoutStage.PERMANENT,
            failed_attempts=failures,
            permanently_locked=True,
        )
