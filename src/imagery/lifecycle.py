"""
Tile request lifecycle.

Drives one TileRequest from UNISSUED to RECEIVED or FAILED:

    UNISSUED  -> IN_FLIGHT   first issue
    IN_FLIGHT -> RECEIVED    transport success (terminal)
    IN_FLIGHT -> IN_FLIGHT   failure, retry granted by the channel
    IN_FLIGHT -> FAILED      failure, no retry (terminal)

Attempts of one request are strictly sequential.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from imagery.errors import InvalidTileStateError, RequestFailedError
from imagery.request import TileRequestState
from imagery.retry import RetryDecision
from imagery.url import build_url, redact_url

if TYPE_CHECKING:
    from collections.abc import Mapping

    from PIL import Image

    from imagery.options import TileSourceConfig
    from imagery.request import TileRequest
    from imagery.retry import RetryChannel

logger = logging.getLogger(__name__)

_LEGAL_TRANSITIONS = {
    TileRequestState.UNISSUED: frozenset({TileRequestState.IN_FLIGHT}),
    TileRequestState.IN_FLIGHT: frozenset(
        {
            TileRequestState.IN_FLIGHT,
            TileRequestState.RECEIVED,
            TileRequestState.FAILED,
        }
    ),
    TileRequestState.RECEIVED: frozenset(),
    TileRequestState.FAILED: frozenset(),
}


class TileTransport(Protocol):
    """Issues one attempt; raises on failure."""

    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Image.Image: ...


class TileRequestLifecycle:
    def __init__(
        self,
        config: TileSourceConfig,
        request: TileRequest,
        transport: TileTransport,
        channel: RetryChannel,
    ) -> None:
        if request.state is not TileRequestState.UNISSUED:
            msg = f'{request!r} has already been issued'
            raise InvalidTileStateError(msg)
        request.claim(self)
        self._config = config
        self._request = request
        self._transport = transport
        self._channel = channel

    @property
    def request(self) -> TileRequest:
        return self._request

    def _transition(self, new_state: TileRequestState) -> None:
        current = self._request.state
        if new_state not in _LEGAL_TRANSITIONS[current]:
            msg = f'Illegal transition {current.name} -> {new_state.name} for {self._request!r}'
            raise InvalidTileStateError(msg)
        self._request.state = new_state

    def _retry_allowed(self, decision: RetryDecision) -> bool:
        req = self._request
        if not decision.retry:
            return False
        cap = self._config.max_retries
        if cap is not None and decision.times_retried >= cap:
            logger.warning(
                'Retry cap (%d) reached for tile z/x/y=%s/%s/%s',
                cap,
                req.level,
                req.x,
                req.y,
            )
            return False
        if req.released:
            logger.debug('Tile %r released, no further retries', req)
            return False
        return True

    def _fail(self, error: BaseException) -> RequestFailedError:
        req = self._request
        self._transition(TileRequestState.FAILED)
        req.error = error
        logger.warning(
            'Tile z/x/y=%s/%s/%s failed after %d attempt(s): %s',
            req.level,
            req.x,
            req.y,
            req.attempt_count,
            error,
        )
        return RequestFailedError(req.level, req.x, req.y, req.attempt_count)

    async def run(self) -> Image.Image:
        """Run the lifecycle to a terminal state and return the image."""
        req = self._request
        if req.state is not TileRequestState.UNISSUED:
            msg = f'{req!r} has already been issued'
            raise InvalidTileStateError(msg)
        try:
            return await self._run_attempts()
        except asyncio.CancelledError as e:
            if not req.settled:
                self._transition(TileRequestState.FAILED)
                req.error = e
            raise

    async def _run_attempts(self) -> Image.Image:
        req = self._request
        while True:
            self._transition(TileRequestState.IN_FLIGHT)
            req.attempt_count += 1
            try:
                url = build_url(self._config, req.level, req.x, req.y)
            except ValueError as e:
                raise self._fail(e) from e
            logger.debug('Attempt %d: %s', req.attempt_count, redact_url(url))
            try:
                image = await self._transport.fetch(
                    url, headers=self._config.headers or None
                )
            except Exception as e:
                error: Exception = e
            else:
                self._transition(TileRequestState.RECEIVED)
                req.image = image
                return image

            decision = RetryDecision(
                level=req.level,
                x=req.x,
                y=req.y,
                times_retried=req.attempt_count - 1,
                error=error,
            )
            self._channel.notify(decision)
            if not self._retry_allowed(decision):
                raise self._fail(error) from error

            logger.info(
                'Retrying tile z/x/y=%s/%s/%s (retry %d, delay %.2fs)',
                req.level,
                req.x,
                req.y,
                decision.times_retried + 1,
                decision.delay,
            )
            if decision.delay > 0:
                await asyncio.sleep(decision.delay)
                if req.released:
                    raise self._fail(error) from error
