"""Render Readiness Gate — bounded retry while the rendering surface is not ready.

Invariants:
    - An action runs immediately when the surface is ready
    - Otherwise it is re-checked on the Scheduler with RetryPolicy backoff
    - One pending retry per label: a newer action for the same label replaces the
      older one and keeps its attempt counter
    - After policy.max_attempts failed checks the action is DROPPED (never run),
      logged, and reported through on_exhausted — the view proceeds without markers

Design Decisions:
    - Explicit attempt counter + scheduler instead of recursive timeouts: a manual
      scheduler in tests drives every retry deterministically
"""

import logging
from dataclasses import dataclass
from typing import Callable

from geotrove.core.backoff import RetryPolicy, RetryState
from geotrove.core.boundary_protocols import RenderSurface, Scheduler, TimerHandle
from geotrove.core.errors import RenderSurfaceNotReadyError

logger = logging.getLogger(__name__)


@dataclass
class _PendingRender:
    action: Callable[[], object]
    retry: RetryState
    timer: TimerHandle | None = None


class RenderReadinessGate:
    def __init__(
        self,
        surface: RenderSurface,
        scheduler: Scheduler,
        policy: RetryPolicy,
        on_exhausted: Callable[[RenderSurfaceNotReadyError], None] | None = None,
    ):
        self._surface = surface
        self._scheduler = scheduler
        self._policy = policy
        self._on_exhausted = on_exhausted
        self._pending: dict[str, _PendingRender] = {}

    @property
    def pending_labels(self) -> list[str]:
        return list(self._pending)

    def run_when_ready(self, label: str, action: Callable[[], object]) -> bool:
        """Run now if ready. Returns False when the action was deferred."""
        if self._surface.is_ready():
            action()
            return True

        pending = self._pending.get(label)
        if pending is not None:
            pending.action = action
            return False

        pending = _PendingRender(action, RetryState(self._policy))
        self._pending[label] = pending
        self._schedule(label, pending)
        return False

    def _schedule(self, label: str, pending: _PendingRender) -> None:
        delay_ms = pending.retry.next_delay_ms()
        if delay_ms is None:
            self._give_up(label, pending)
            return
        logger.debug(
            f"Render surface not ready for {label}; retry in {delay_ms:.0f}ms",
            extra={"attempt": pending.retry.attempts},
        )
        pending.timer = self._scheduler.call_later(
            delay_ms / 1000, lambda: self._check(label),
        )

    def _check(self, label: str) -> None:
        pending = self._pending.get(label)
        if pending is None:
            return
        pending.timer = None
        if self._surface.is_ready():
            del self._pending[label]
            pending.action()
            return
        self._schedule(label, pending)

    def _give_up(self, label: str, pending: _PendingRender) -> None:
        del self._pending[label]
        error = RenderSurfaceNotReadyError(pending.retry.attempts)
        logger.warning(
            f"Render surface never became ready for {label}; continuing without markers",
            extra={"error_code": error.code, "attempt": pending.retry.attempts},
        )
        if self._on_exhausted is not None:
            self._on_exhausted(error)

    def cancel_all(self) -> None:
        for pending in self._pending.values():
            if pending.timer is not None:
                pending.timer.cancel()
        self._pending.clear()
