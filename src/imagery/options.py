"""Pydantic models for provider options and the resolved tile source config."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from imagery.resource import Resource
from shared.constants import (
    ACCESS_TOKEN_PARAM,
    DEFAULT_CREDIT_LINK,
    DEFAULT_CREDIT_TEXT,
    DEFAULT_MINIMUM_LEVEL,
    DEFAULT_USERNAME,
    MAPBOX_STYLES_BASE,
    PLACEHOLDER_LEVEL,
    PLACEHOLDER_X,
    PLACEHOLDER_Y,
    TILE_SIZE,
    WEB_MERCATOR_RECTANGLE,
)


class Rectangle(BaseModel):
    """Geographic bounds in radians. Informational only."""

    model_config = ConfigDict(frozen=True)

    west: float
    south: float
    east: float
    north: float

    @classmethod
    def from_tuple(cls, bounds: tuple[float, float, float, float]) -> Rectangle:
        west, south, east, north = bounds
        return cls(west=west, south=south, east=east, north=north)


class Credit(BaseModel):
    """Attribution shown next to the imagery."""

    model_config = ConfigDict(frozen=True)

    text: str
    html: str
    link: str | None = None

    @classmethod
    def from_text(cls, text: str) -> Credit:
        return cls(text=text, html=text)


DEFAULT_CREDIT = Credit(
    text=DEFAULT_CREDIT_TEXT,
    html=f'<a href="{DEFAULT_CREDIT_LINK}">{DEFAULT_CREDIT_TEXT}</a>',
    link=DEFAULT_CREDIT_LINK,
)

WEB_MERCATOR_WORLD = Rectangle.from_tuple(WEB_MERCATOR_RECTANGLE)


class ProviderOptions(BaseModel):
    """
    Опции конструктора провайдера.

    Принимаются как snake_case, так и camelCase имена (styleId, accessToken,
    scaleFactor, minimumLevel, maximumLevel, maxRetries).
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra='ignore',
        arbitrary_types_allowed=True,
    )

    # Корень сервиса: строка или готовый Resource
    url: str | Resource = MAPBOX_STYLES_BASE
    # Аккаунт владельца стиля
    username: str = Field(DEFAULT_USERNAME, min_length=1)
    # Идентификатор стиля (обязателен, проверяется в validate_options)
    style_id: str | None = Field(None, alias='styleId')
    # Явный токен доступа
    access_token: str | None = Field(None, alias='accessToken')
    # Внешний источник токена: функция, возвращающая токен или awaitable
    credential_source: Callable[[], Any] | None = Field(
        None, alias='credentialSource'
    )
    # Размер тайла в пути запроса (px), по умолчанию 512
    tilesize: int | None = Field(None, gt=0)
    # Запрашивать тайлы @2x
    scale_factor: bool = Field(False, alias='scaleFactor')
    minimum_level: int | None = Field(None, ge=0, alias='minimumLevel')
    maximum_level: int | None = Field(None, ge=0, alias='maximumLevel')
    rectangle: Rectangle | None = None
    credit: str | Credit | None = None
    # Необязательный предел числа повторов (None — без ограничения)
    max_retries: int | None = Field(None, ge=0, alias='maxRetries')

    @field_validator('rectangle', mode='before')
    @classmethod
    def validate_rectangle(cls, v: Any) -> Any:
        if isinstance(v, (tuple, list)):
            return Rectangle.from_tuple(tuple(v))
        return v

    @model_validator(mode='after')
    def validate_levels(self) -> ProviderOptions:
        if (
            self.minimum_level is not None
            and self.maximum_level is not None
            and self.minimum_level > self.maximum_level
        ):
            msg = 'minimumLevel must not be greater than maximumLevel'
            raise ValueError(msg)
        return self


class TileSourceConfig(BaseModel):
    """Immutable result of config resolution, shared by all tile requests."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    url_template: str
    tile_width: int = TILE_SIZE
    tile_height: int = TILE_SIZE
    minimum_level: int = DEFAULT_MINIMUM_LEVEL
    maximum_level: int | None = None
    rectangle: Rectangle = WEB_MERCATOR_WORLD
    credit: Credit = DEFAULT_CREDIT
    headers: dict[str, str] = Field(default_factory=dict)
    max_retries: int | None = None

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.endswith('/') or v.endswith('//'):
            msg = 'base_url must end with exactly one "/"'
            raise ValueError(msg)
        return v

    @field_validator('url_template')
    @classmethod
    def validate_url_template(cls, v: str) -> str:
        for placeholder in (PLACEHOLDER_LEVEL, PLACEHOLDER_X, PLACEHOLDER_Y):
            if placeholder not in v:
                msg = f'url_template is missing {placeholder}'
                raise ValueError(msg)
        marker = f'{ACCESS_TOKEN_PARAM}='
        _, found, rest = v.partition(marker)
        if not found or not rest.split('&', 1)[0]:
            msg = 'url_template has no resolved access token'
            raise ValueError(msg)
        return v

    def contains_level(self, level: int) -> bool:
        if level < self.minimum_level:
            return False
        return self.maximum_level is None or level <= self.maximum_level
