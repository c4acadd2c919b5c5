"""Mapbox style tile source: readiness gating, URL templating, retryable tile requests."""
from imagery.errors import (
    ConfigError,
    CredentialResolutionError,
    InvalidTileCoordinatesError,
    InvalidTileStateError,
    LevelOutOfRangeError,
    MissingStyleIdError,
    NotReadyError,
    RequestFailedError,
    TileSourceError,
    TransportFailure,
)
from imagery.options import Credit, ProviderOptions, Rectangle, TileSourceConfig
from imagery.provider import MapboxStyleTileProvider
from imagery.request import TileRequest, TileRequestState
from imagery.resource import Resource
from imagery.retry import RetryChannel, RetryDecision, backoff_policy
from imagery.url import build_url

__all__ = [
    'ConfigError',
    'Credit',
    'CredentialResolutionError',
    'InvalidTileCoordinatesError',
    'InvalidTileStateError',
    'LevelOutOfRangeError',
    'MapboxStyleTileProvider',
    'MissingStyleIdError',
    'NotReadyError',
    'ProviderOptions',
    'Rectangle',
    'RequestFailedError',
    'Resource',
    'RetryChannel',
    'RetryDecision',
    'TileRequest',
    'TileRequestState',
    'TileSourceConfig',
    'TileSourceError',
    'TransportFailure',
    'backoff_policy',
    'build_url',
]
