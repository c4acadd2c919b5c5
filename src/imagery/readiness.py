"""One-shot readiness gate."""

from __future__ import annotations

import asyncio
import logging

from imagery.errors import (
    CredentialResolutionError,
    InvalidTileStateError,
    NotReadyError,
)

logger = logging.getLogger(__name__)


class ReadinessGate:
    """
    PENDING -> RESOLVED(True) or PENDING -> REJECTED(cause).

    Settles exactly once. The underlying future is created on first use so the
    gate can be constructed outside a running loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[bool] | None = None

    def _get_future(self) -> asyncio.Future[bool]:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def done(self) -> bool:
        return self._future is not None and self._future.done()

    @property
    def ready(self) -> bool:
        """Synchronous snapshot: True only after a successful settlement."""
        return (
            self.done
            and self._future is not None
            and self._future.exception() is None
        )

    def exception(self) -> BaseException | None:
        if not self.done or self._future is None:
            return None
        return self._future.exception()

    def resolve(self) -> None:
        future = self._get_future()
        if future.done():
            msg = 'Readiness gate is already settled'
            raise InvalidTileStateError(msg)
        future.set_result(True)
        logger.debug('Readiness gate resolved')

    def reject(self, exc: BaseException) -> None:
        future = self._get_future()
        if future.done():
            msg = 'Readiness gate is already settled'
            raise InvalidTileStateError(msg)
        future.set_exception(exc)
        # Помечаем исключение как полученное; читатели видят его через check()/when_ready().
        future.exception()
        logger.debug('Readiness gate rejected: %s', exc)

    async def when_ready(self) -> bool:
        return await asyncio.shield(self._get_future())

    def check(self) -> None:
        """Raise NotReadyError while pending, or a fresh error chained from the rejection cause."""
        if not self.done:
            raise NotReadyError
        exc = self.exception()
        if exc is not None:
            msg = f'Tile source is not available: {exc}'
            raise CredentialResolutionError(msg) from exc
