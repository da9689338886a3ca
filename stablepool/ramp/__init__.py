"""Amplification ramp scheduling."""

from .controller import RampController, RampState, interpolate_a, max_future_a

__all__ = [
    "RampController",
    "RampState",
    "interpolate_a",
    "max_future_a",
]
