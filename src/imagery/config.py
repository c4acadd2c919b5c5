"""
Config resolution.

Turns constructor options into an immutable TileSourceConfig:
validation (synchronous), access token resolution (asynchronous) and URL
template assembly. No network calls are made here.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError

from imagery.credentials import resolve_access_token
from imagery.errors import ConfigError, MissingStyleIdError
from imagery.options import (
    DEFAULT_CREDIT,
    WEB_MERCATOR_WORLD,
    Credit,
    ProviderOptions,
    TileSourceConfig,
)
from imagery.resource import Resource
from imagery.url import redact_url
from shared.constants import (
    ACCESS_TOKEN_PARAM,
    DEFAULT_MINIMUM_LEVEL,
    DEFAULT_TILESIZE,
    PLACEHOLDER_LEVEL,
    PLACEHOLDER_X,
    PLACEHOLDER_Y,
    RETINA_SUFFIX,
    TILE_SIZE,
)

logger = logging.getLogger(__name__)

TokenResolver = Callable[[ProviderOptions], Awaitable[str]]


def validate_options(options: ProviderOptions | Mapping[str, Any]) -> ProviderOptions:
    """Validate options; raises MissingStyleIdError or ConfigError."""
    if isinstance(options, ProviderOptions):
        parsed = options
    else:
        try:
            parsed = ProviderOptions.model_validate(dict(options))
        except ValidationError as e:
            msg = f'Invalid provider options: {e}'
            raise ConfigError(msg) from e
    if not parsed.style_id or not parsed.style_id.strip():
        raise MissingStyleIdError
    return parsed


def normalize_base_url(url: str | Resource) -> str:
    """Base URL with exactly one trailing '/'."""
    base = url.url if isinstance(url, Resource) else url
    return base.rstrip('/') + '/'


def build_url_template(options: ProviderOptions, token: str) -> str:
    """
    <base><username>/<styleId>/tiles/<tilesize>/{z}/{x}/{y}[@2x]?access_token=<token>

    Query parameters of a Resource follow the access token.
    """
    base = normalize_base_url(options.url)
    tilesize = options.tilesize or DEFAULT_TILESIZE
    suffix = RETINA_SUFFIX if options.scale_factor else ''
    path = (
        f'{base}{options.username}/{options.style_id}/tiles/{tilesize}/'
        f'{PLACEHOLDER_LEVEL}/{PLACEHOLDER_X}/{PLACEHOLDER_Y}{suffix}'
    )
    query: dict[str, str] = {ACCESS_TOKEN_PARAM: token}
    if isinstance(options.url, Resource):
        for key, value in options.url.query_parameters.items():
            if key != ACCESS_TOKEN_PARAM:
                query[key] = value
    return f'{path}?{urlencode(query)}'


def make_credit(credit: str | Credit | None) -> Credit:
    if credit is None:
        return DEFAULT_CREDIT
    if isinstance(credit, Credit):
        return credit
    return Credit.from_text(credit)


def build_config(options: ProviderOptions, token: str) -> TileSourceConfig:
    headers = dict(options.url.headers) if isinstance(options.url, Resource) else {}
    minimum_level = (
        options.minimum_level
        if options.minimum_level is not None
        else DEFAULT_MINIMUM_LEVEL
    )
    try:
        return TileSourceConfig(
            base_url=normalize_base_url(options.url),
            url_template=build_url_template(options, token),
            tile_width=TILE_SIZE,
            tile_height=TILE_SIZE,
            minimum_level=minimum_level,
            maximum_level=options.maximum_level,
            rectangle=options.rectangle or WEB_MERCATOR_WORLD,
            credit=make_credit(options.credit),
            headers=headers,
            max_retries=options.max_retries,
        )
    except ValidationError as e:
        msg = f'Invalid tile source config: {e}'
        raise ConfigError(msg) from e


async def resolve_config(
    options: ProviderOptions,
    *,
    resolve_token: TokenResolver = resolve_access_token,
) -> TileSourceConfig:
    """Await the access token and build the config."""
    token = await resolve_token(options)
    config = build_config(options, token)
    logger.info('Tile source configured: %s', redact_url(config.url_template))
    return config
