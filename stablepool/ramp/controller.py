"""Amplification ramp controller.

Holds a linear schedule for A. The controller is Idle when the clock is at or
past future_time (get_current_a() == future_a) and Ramping before it, where A
moves linearly from initial_a to future_a.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from stablepool.constants import (
    DEFAULT_MIN_RAMP_TIME,
    LOW_A_THRESHOLD,
    MAX_A,
    MAX_A_CHANGE_FACTOR,
)
from stablepool.errors import (
    AOutOfBounds,
    ExcessiveAChange,
    InsufficientRampTime,
    InvalidFutureTime,
)
from stablepool.models.events import Event, RampInitiated, RampStopped
from stablepool.tokens import Clock

logger = structlog.get_logger()


@dataclass
class RampState:
    """Ramp schedule. future_time > initial_time while a ramp is active."""

    initial_a: int
    future_a: int
    initial_time: int
    future_time: int
    min_ramp_time: int = DEFAULT_MIN_RAMP_TIME


def interpolate_a(state: RampState, now: int) -> int:
    """A at time `now` for the given schedule.

    Each direction is computed separately so that flooring moves towards
    initial_a, which keeps the result monotonic in time.
    """
    if now >= state.future_time:
        return state.future_a
    elapsed = max(now - state.initial_time, 0)
    duration = state.future_time - state.initial_time
    if state.future_a > state.initial_a:
        return state.initial_a + (state.future_a - state.initial_a) * elapsed // duration
    return state.initial_a - (state.initial_a - state.future_a) * elapsed // duration


def max_future_a(current_a: int) -> int:
    """Largest target A a ramp may start from current_a."""
    if current_a <= LOW_A_THRESHOLD:
        return current_a * (MAX_A_CHANGE_FACTOR + 1 - current_a)
    return current_a * MAX_A_CHANGE_FACTOR


class RampController:
    """Time-bounded linear interpolation of the amplification coefficient.

    Implements the RampAuthority protocol, so a pool can use it as its
    source of A. Governance access control is left to the caller.
    """

    def __init__(
        self,
        initial_a: int,
        clock: Clock,
        min_ramp_time: int = DEFAULT_MIN_RAMP_TIME,
    ) -> None:
        if not 0 < initial_a <= MAX_A:
            raise AOutOfBounds(f"A must be in (0, {MAX_A}], got {initial_a}")
        if min_ramp_time < 0:
            raise InsufficientRampTime(f"min_ramp_time must be non-negative, got {min_ramp_time}")
        now = clock()
        self._clock = clock
        self.state = RampState(
            initial_a=initial_a,
            future_a=initial_a,
            initial_time=now,
            future_time=now,
            min_ramp_time=min_ramp_time,
        )
        self.events: list[Event] = []

    @property
    def is_ramping(self) -> bool:
        return self._clock() < self.state.future_time

    def get_current_a(self) -> int:
        return interpolate_a(self.state, self._clock())

    def ramp_a(self, future_a: int, future_time: int) -> None:
        """Start a ramp from the current A to future_a, ending at future_time.

        Raises:
            InvalidFutureTime: If future_time is not after now
            InsufficientRampTime: If the window is shorter than min_ramp_time
            AOutOfBounds: If future_a is zero or above MAX_A
            ExcessiveAChange: If future_a is more than 10x away from current A
        """
        now = self._clock()
        if future_time <= now:
            raise InvalidFutureTime(f"future_time {future_time} must be after {now}")
        if future_time - now < self.state.min_ramp_time:
            raise InsufficientRampTime(
                f"Ramp of {future_time - now}s is shorter than {self.state.min_ramp_time}s"
            )
        if not 0 < future_a <= MAX_A:
            raise AOutOfBounds(f"A must be in (0, {MAX_A}], got {future_a}")

        current_a = self.get_current_a()
        if future_a > current_a and future_a > max_future_a(current_a):
            raise ExcessiveAChange(f"Cannot ramp A from {current_a} up to {future_a}")
        if future_a < current_a and future_a * MAX_A_CHANGE_FACTOR < current_a:
            raise ExcessiveAChange(f"Cannot ramp A from {current_a} down to {future_a}")

        self.state.initial_a = current_a
        self.state.future_a = future_a
        self.state.initial_time = now
        self.state.future_time = future_time

        event = RampInitiated(
            initial_a=current_a,
            future_a=future_a,
            initial_time=now,
            future_time=future_time,
        )
        self.events.append(event)
        logger.info("ramp_initiated", **event.as_dict())

    def stop_ramp(self) -> int:
        """Freeze A at its current value. Returns that value."""
        now = self._clock()
        current_a = self.get_current_a()
        self.state.initial_a = current_a
        self.state.future_a = current_a
        self.state.initial_time = now
        self.state.future_time = now

        event = RampStopped(current_a=current_a, time=now)
        self.events.append(event)
        logger.info("ramp_stopped", current_a=current_a, time=now)
        return current_a

    def set_min_ramp_time(self, min_ramp_time: int) -> None:
        if min_ramp_time < 0:
            raise InsufficientRampTime(f"min_ramp_time must be non-negative, got {min_ramp_time}")
        self.state.min_ramp_time = min_ramp_time
