from __future__ import annotations

from datetime import timedelta

from membership_pipeline.parsing.profiles.delivery_queue import Backoff


def exponential_backoff(base: timedelta, *, factor: float = 2.0, cap: timedelta | None = None) -> Backoff:
    """
    `attempts -> base * factor ** (attempts - 1)`, optionally capped.

    With the defaults a 5 minute base gives 5m, 10m, 20m, 40m, ...
    """
    if base < timedelta(0):
        raise ValueError(f"base must be >= 0, got: {base}")
    if factor < 1:
        raise ValueError(f"factor must be >= 1 to keep delays non-decreasing, got: {factor}")

    def delay(attempts: int) -> timedelta:
        d = base * (factor ** max(attempts - 1, 0))
        if cap is not None and d > cap:
            return cap
        return d

    return delay


def constant_backoff(delay: timedelta) -> Backoff:
    """Same delay before every retry."""
    if delay < timedelta(0):
        raise ValueError(f"delay must be >= 0, got: {delay}")
    return lambda attempts: delay
