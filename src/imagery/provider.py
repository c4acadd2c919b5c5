"""Mapbox style tile provider."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from imagery.config import (
    TokenResolver,
    build_url_template,
    make_credit,
    resolve_config,
    validate_options,
)
from imagery.credentials import resolve_access_token
from imagery.errors import (
    CredentialResolutionError,
    InvalidTileCoordinatesError,
    LevelOutOfRangeError,
    TileSourceError,
)
from imagery.lifecycle import TileRequestLifecycle
from imagery.options import WEB_MERCATOR_WORLD, ProviderOptions
from imagery.readiness import ReadinessGate
from imagery.request import TileRequest
from imagery.retry import RetryChannel
from shared.constants import (
    DEFAULT_MINIMUM_LEVEL,
    HTTP_CACHE_EXPIRE_HOURS,
    TILE_SIZE,
)

if TYPE_CHECKING:
    from pathlib import Path

    import aiohttp
    from PIL import Image

    from imagery.lifecycle import TileTransport
    from imagery.options import Credit, Rectangle, TileSourceConfig

logger = logging.getLogger(__name__)


class MapboxStyleTileProvider:
    """
    Tile image source for a Mapbox style.

    Must be constructed inside a running event loop: construction validates
    the options synchronously (MissingStyleIdError, ConfigError) and then
    schedules config resolution. Tile requests are refused until
    ``when_ready()`` has completed.

    Failed attempts are broadcast on ``error_event``; an observer sets
    ``decision.retry = True`` to get another attempt.
    """

    def __init__(
        self,
        options: ProviderOptions | Mapping[str, Any] | None = None,
        *,
        transport: TileTransport | None = None,
        cache_dir: Path | None = None,
        cache_expire_hours: int = HTTP_CACHE_EXPIRE_HOURS,
        resolve_token: TokenResolver = resolve_access_token,
        **kwargs: Any,
    ) -> None:
        if isinstance(options, ProviderOptions) and not kwargs:
            raw: ProviderOptions | dict[str, Any] = options
        elif isinstance(options, ProviderOptions):
            raw = {**options.model_dump(), **kwargs}
        else:
            raw = {**dict(options or {}), **kwargs}
        self._options = validate_options(raw)

        self.error_event = RetryChannel()
        self._gate = ReadinessGate()
        self._config: TileSourceConfig | None = None
        self._credit = make_credit(self._options.credit)
        self._transport = transport
        self._cache_dir = cache_dir
        self._cache_expire_hours = cache_expire_hours
        self._session: aiohttp.ClientSession | None = None

        self._resolve_task = asyncio.get_running_loop().create_task(
            self._resolve(resolve_token)
        )

    async def _resolve(self, resolve_token: TokenResolver) -> None:
        try:
            config = await resolve_config(self._options, resolve_token=resolve_token)
        except TileSourceError as e:
            logger.error('Tile source configuration failed: %s', e)
            self._gate.reject(e)
            return
        except Exception as e:
            logger.exception('Access token resolution failed')
            err = CredentialResolutionError(f'Access token resolution failed: {e}')
            err.__cause__ = e
            self._gate.reject(err)
            return
        self._config = config
        self._gate.resolve()

    # --- Readiness
    @property
    def ready(self) -> bool:
        return self._gate.ready

    async def when_ready(self) -> bool:
        return await self._gate.when_ready()

    # --- Metadata
    @property
    def options(self) -> ProviderOptions:
        return self._options

    @property
    def config(self) -> TileSourceConfig | None:
        return self._config

    @property
    def url(self) -> str | None:
        """URL template with the access token, once it is known."""
        if self._config is not None:
            return self._config.url_template
        if self._options.access_token:
            return build_url_template(self._options, self._options.access_token)
        return None

    @property
    def tile_width(self) -> int:
        return TILE_SIZE

    @property
    def tile_height(self) -> int:
        return TILE_SIZE

    @property
    def minimum_level(self) -> int:
        if self._options.minimum_level is None:
            return DEFAULT_MINIMUM_LEVEL
        return self._options.minimum_level

    @property
    def maximum_level(self) -> int | None:
        return self._options.maximum_level

    @property
    def rectangle(self) -> Rectangle:
        return self._options.rectangle or WEB_MERCATOR_WORLD

    @property
    def credit(self) -> Credit:
        return self._credit

    @property
    def has_alpha_channel(self) -> bool:
        return True

    @property
    def tile_discard_policy(self) -> None:
        return None

    # --- Tiles
    def _get_transport(self) -> TileTransport:
        if self._transport is None:
            from infrastructure.http.client import AiohttpTileTransport, make_http_session

            self._session = make_http_session(
                self._cache_dir, expire_hours=self._cache_expire_hours
            )
            self._transport = AiohttpTileTransport(self._session)
        return self._transport

    def request_tile(self, request: TileRequest) -> asyncio.Task[Image.Image]:
        """
        Issue ``request`` and return the task delivering its image.

        Raises NotReadyError before readiness, CredentialResolutionError
        (chained from the rejection cause) if configuration failed,
        InvalidTileCoordinatesError for negative coordinates and
        LevelOutOfRangeError for levels outside
        [minimum_level, maximum_level]; none of these build a URL or touch
        the transport.
        """
        self._gate.check()
        config = self._config
        assert config is not None
        if min(request.level, request.x, request.y) < 0:
            raise InvalidTileCoordinatesError(request.level, request.x, request.y)
        if not config.contains_level(request.level):
            raise LevelOutOfRangeError(
                request.level, config.minimum_level, config.maximum_level
            )
        lifecycle = TileRequestLifecycle(
            config, request, self._get_transport(), self.error_event
        )
        return asyncio.get_running_loop().create_task(
            lifecycle.run(),
            name=f'tile-{request.level}-{request.x}-{request.y}',
        )

    def request_image(self, level: int, x: int, y: int) -> asyncio.Task[Image.Image]:
        """
        Request a tile by coordinates, holding one reference for the task.

        The reference is dropped when the task finishes. Cancelling the task
        is the release path here: the request ends in FAILED and no further
        retries are issued. Use request_tile with an own TileRequest to
        release references explicitly.
        """
        request = TileRequest(level, x, y)
        request.add_reference()
        task = self.request_tile(request)
        task.add_done_callback(lambda _task: request.release_reference())
        return task

    async def fetch_image(self, level: int, x: int, y: int) -> Image.Image:
        """Wait for readiness, then request one tile and await it."""
        await self.when_ready()
        return await self.request_image(level, x, y)

    # --- Resources
    async def aclose(self) -> None:
        if not self._resolve_task.done():
            self._resolve_task.cancel()
        if self._session is not None:
            await self._session.close()
            self._session = None
            self._transport = None

    async def __aenter__(self) -> MapboxStyleTileProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
