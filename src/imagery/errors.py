"""Exception hierarchy of the tile source."""

from __future__ import annotations

from shared.constants import (
    HTTP_5XX_MAX,
    HTTP_5XX_MIN,
    HTTP_TOO_MANY_REQUESTS,
)


class TileSourceError(Exception):
    """Base class for all tile source errors."""


class ConfigError(TileSourceError, ValueError):
    """Provider options are invalid."""


class MissingStyleIdError(ConfigError):
    def __init__(self, msg: str = 'styleId is required') -> None:
        super().__init__(msg)


class NotReadyError(TileSourceError):
    """A tile operation was attempted before the provider became ready."""

    def __init__(
        self,
        msg: str = 'Tile source is not ready; await when_ready() first',
    ) -> None:
        super().__init__(msg)


class CredentialResolutionError(TileSourceError):
    """The access token could not be resolved."""


class LevelOutOfRangeError(TileSourceError, ValueError):
    def __init__(
        self,
        level: int,
        minimum_level: int | None,
        maximum_level: int | None,
    ) -> None:
        self.level = level
        self.minimum_level = minimum_level
        self.maximum_level = maximum_level
        super().__init__(
            f'Level {level} is outside [{minimum_level}, {maximum_level}]'
        )


class InvalidTileCoordinatesError(TileSourceError, ValueError):
    def __init__(self, level: int, x: int, y: int) -> None:
        self.level = level
        self.x = x
        self.y = y
        super().__init__(
            f'Tile coordinates must be non-negative, got z/x/y={level}/{x}/{y}'
        )


class InvalidTileStateError(TileSourceError, RuntimeError):
    """Illegal transition of a tile request or of the readiness gate."""


class TransportFailure(TileSourceError):
    """
    One failed attempt of the transport.

    ``status`` is the HTTP status code, or ``None`` when no response was
    received (connection error, timeout, undecodable body).
    ``url`` must already be redacted.
    """

    def __init__(
        self,
        msg: str,
        *,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(msg)
        self.status = status
        self.url = url

    @property
    def retryable(self) -> bool:
        if self.status is None:
            return True
        if self.status == HTTP_TOO_MANY_REQUESTS:
            return True
        return HTTP_5XX_MIN <= self.status < HTTP_5XX_MAX


class RequestFailedError(TileSourceError):
    """Terminal failure of a tile request, surfaced to the caller."""

    def __init__(self, level: int, x: int, y: int, attempts: int) -> None:
        self.level = level
        self.x = x
        self.y = y
        self.attempts = attempts
        super().__init__(
            f'Failed to load tile z/x/y={level}/{x}/{y} after {attempts} attempt(s)'
        )
