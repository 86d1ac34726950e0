"""
Resilience helpers for Goalpost: exponential backoff for background reconnects.

The cache client uses this to space out reconnect attempts after the
backend drops, so a Redis outage produces a handful of connection attempts
per minute instead of a tight retry loop.
"""

import random


def backoff_delay(
    attempt: int,
    base_delay: float = 5.0,
    max_delay: float = 30.0,
    multiplier: float = 2.0,
    jitter_pct: float = 0.0,
) -> float:
    """
    Delay before reconnect attempt number ``attempt`` (0-based).

    Args:
        attempt: How many attempts have already failed.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        multiplier: Growth factor per attempt (2.0 = double each time).
        jitter_pct: Random jitter as percentage of delay (0.25 = ±25%).
            Applied before capping, so the result never exceeds ``max_delay``.

    Schedule (base_delay=5, max_delay=30, no jitter):
        Attempt 0: 5s
        Attempt 1: 10s
        Attempt 2: 20s
        Attempt 3+: 30s
    """
    # Bound the exponent so large attempt counts cannot overflow
    exponent = min(max(attempt, 0), 32)
    delay = base_delay * (multiplier ** exponent)
    if jitter_pct:
        delay += delay * jitter_pct * (2 * random.random() - 1)
    return max(0.0, min(delay, max_delay))
