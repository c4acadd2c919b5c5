from __future__ import annotations

import re
from typing import TYPE_CHECKING

from shared.constants import (
    ACCESS_TOKEN_PARAM,
    API_KEY_VISIBLE_PREFIX_LEN,
    PLACEHOLDER_LEVEL,
    PLACEHOLDER_X,
    PLACEHOLDER_Y,
)

if TYPE_CHECKING:
    from imagery.options import TileSourceConfig

_TOKEN_RE = re.compile(rf'({ACCESS_TOKEN_PARAM}=)([^&#]*)')


def build_url(config: TileSourceConfig, level: int, x: int, y: int) -> str:
    """
    Подставляет координаты тайла в шаблон URL.

    Чистая функция: границы уровней и прямоугольник здесь не проверяются.
    """
    for name, value in (('level', level), ('x', x), ('y', y)):
        if value < 0:
            msg = f'Tile {name} must be non-negative, got {value}'
            raise ValueError(msg)
    return (
        config.url_template.replace(PLACEHOLDER_LEVEL, str(int(level)))
        .replace(PLACEHOLDER_X, str(int(x)))
        .replace(PLACEHOLDER_Y, str(int(y)))
    )


def mask_token(token: str) -> str:
    if len(token) <= API_KEY_VISIBLE_PREFIX_LEN:
        return '***'
    return f'{token[:API_KEY_VISIBLE_PREFIX_LEN]}***'


def redact_url(url: str) -> str:
    """URL, пригодный для логов: токен доступа замаскирован."""
    return _TOKEN_RE.sub(lambda m: m.group(1) + mask_token(m.group(2)), url)
