"""Bounded Retry Policy — attempt counter + exponential backoff, no timers.

Invariants:
    - delay_ms(n) = min(base * factor^(n-1), max_delay) scaled by optional ±jitter
    - A RetryState never schedules more than policy.max_attempts attempts
    - Randomness enters as an argument: same inputs → same delay

Design Decisions:
    - Pure state machine driven by the shell's Scheduler: retry loops become
      testable with a manual clock instead of real sleeps
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay_ms: float = 500.0
    factor: float = 2.0
    max_delay_ms: float = 8_000.0
    jitter: float = 0.0

    def delay_ms(self, attempt: int, rand: float = 0.5) -> float:
        """Delay before retry number `attempt` (1-based). rand in [0, 1)."""
        raw = self.base_delay_ms * (self.factor ** max(attempt - 1, 0))
        delay = min(raw, self.max_delay_ms)
        if self.jitter:
            delay *= 1 + self.jitter * (2 * rand - 1)
        return max(delay, 0.0)


@dataclass
class RetryState:
    """Attempt counter for one retried operation."""
    policy: RetryPolicy
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.policy.max_attempts

    @property
    def remaining(self) -> int:
        return max(self.policy.max_attempts - self.attempts, 0)

    def next_delay_ms(self, rand: float = 0.5) -> float | None:
        """Consume one attempt. None when the budget is spent."""
        if self.exhausted:
            return None
        self.attempts += 1
        return self.policy.delay_ms(self.attempts, rand)

    def reset(self) -> None:
        self.attempts = 0
