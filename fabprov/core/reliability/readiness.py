"""
Readiness polling — bounded wait for a service to come up.

A service is ready when every named check passes in the same attempt.
Checks run in order and an attempt stops at the first failing check,
so a cheap port probe gates the log scan. Polling stops on the first
attempt where all checks pass; after ``retries`` attempts it gives up.

    result = poll_until(
        {"port": lambda: probe.reachable("localhost", 7054),
         "log": lambda: "Listening on" in containers.logs("ca-org1")},
        retries=10, interval=6.0, initial_delay=5.0,
    )
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class PollAttempt:
    """Check results of one attempt (failed checks end the attempt)."""

    number: int
    results: dict[str, bool] = field(default_factory=dict)

    def passed(self, expected: int) -> bool:
        return len(self.results) == expected and all(self.results.values())


@dataclass
class PollResult:
    """Outcome of a bounded poll."""

    ready: bool
    attempts: list[PollAttempt] = field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def last_failed_check(self) -> str | None:
        """Name of the check that blocked the last attempt."""
        if not self.attempts:
            return None
        for name, ok in self.attempts[-1].results.items():
            if not ok:
                return name
        return None


def poll_until(
    checks: Mapping[str, Callable[[], bool]],
    *,
    retries: int,
    interval: float,
    initial_delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "service",
) -> PollResult:
    """Poll *checks* until all pass in one attempt or the budget runs out.

    Sleeps ``initial_delay`` once, then ``interval`` between attempts
    (never after the last one).
    """
    if retries < 1:
        raise ValueError("retries must be >= 1")

    result = PollResult(ready=False)
    if initial_delay > 0:
        sleep(initial_delay)

    for number in range(1, retries + 1):
        attempt = PollAttempt(number=number)
        for name, check in checks.items():
            attempt.results[name] = bool(check())
            if not attempt.results[name]:
                break
        result.attempts.append(attempt)

        if attempt.passed(len(checks)):
            logger.info("%s ready after %d attempt(s)", label, number)
            result.ready = True
            return result

        logger.info(
            "%s not ready yet, waiting... (%d/%d, blocked on %s)",
            label,
            number,
            retries,
            result.last_failed_check(),
        )
        if number < retries:
            sleep(interval)

    logger.warning("%s not ready after %d attempts", label, retries)
    return result
