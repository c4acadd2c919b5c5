"""
Retry policy channel.

Every failed attempt of a tile request is broadcast as a RetryDecision to
the registered observers, synchronously and in registration order. An
observer grants another attempt by setting ``decision.retry = True`` and may
ask for a pause before it through ``decision.delay`` (seconds).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from imagery.errors import TransportFailure
from shared.constants import HTTP_BACKOFF_FACTOR, HTTP_RETRIES_DEFAULT

logger = logging.getLogger(__name__)


@dataclass
class RetryDecision:
    level: int
    x: int
    y: int
    times_retried: int
    error: BaseException
    retry: bool = False
    delay: float = 0.0

    @property
    def timesRetried(self) -> int:  # noqa: N802 - name of the public event field
        return self.times_retried


RetryObserver = Callable[[RetryDecision], None]


class RetryChannel:
    """Synchronous observer list for failed tile attempts."""

    def __init__(self) -> None:
        self._observers: list[RetryObserver] = []

    def __len__(self) -> int:
        return len(self._observers)

    def add_observer(self, observer: RetryObserver) -> Callable[[], None]:
        """Register ``observer``; returns a callable that unregisters it."""
        self._observers.append(observer)
        logger.debug('Added retry observer: %r', observer)

        def _remove() -> None:
            self.remove_observer(observer)

        return _remove

    def remove_observer(self, observer: RetryObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)
            logger.debug('Removed retry observer: %r', observer)

    def notify(self, decision: RetryDecision) -> RetryDecision:
        """Invoke every observer with ``decision`` and return it."""
        # Snapshot: observers may unregister themselves while being notified
        for observer in list(self._observers):
            try:
                observer(decision)
            except Exception:
                logger.exception(
                    'Retry observer %r failed for tile z/x/y=%s/%s/%s',
                    observer,
                    decision.level,
                    decision.x,
                    decision.y,
                )
        return decision


def backoff_policy(
    retries: int = HTTP_RETRIES_DEFAULT,
    backoff: float = HTTP_BACKOFF_FACTOR,
) -> RetryObserver:
    """
    Observer granting up to ``retries`` attempts in total for retryable
    transport failures (no response, 429, 5xx), waiting
    ``backoff ** times_retried`` seconds before each new attempt.
    401/403/404 and other client errors are never retried.
    """

    def _observe(decision: RetryDecision) -> None:
        error = decision.error
        if isinstance(error, TransportFailure) and not error.retryable:
            return
        if decision.times_retried >= retries - 1:
            return
        decision.retry = True
        decision.delay = backoff**decision.times_retried

    return _observe
