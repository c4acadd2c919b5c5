from __future__ import annotations

import contextlib
import logging
import os
import sqlite3
import ssl
from datetime import timedelta
from io import BytesIO
from pathlib import Path
from typing import TYPE_CHECKING

import aiohttp
import certifi
from aiohttp_client_cache import CachedSession, SQLiteBackend
from PIL import Image, UnidentifiedImageError

from imagery.errors import TransportFailure
from imagery.url import redact_url
from shared.constants import (
    HTTP_CACHE_DIR,
    HTTP_CACHE_ENABLED,
    HTTP_CACHE_EXPIRE_HOURS,
    HTTP_CACHE_RESPECT_HEADERS,
    HTTP_CACHE_STALE_IF_ERROR_HOURS,
    HTTP_OK,
    HTTP_TIMEOUT_DEFAULT,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


def resolve_cache_dir() -> Path:
    raw_dir = Path(HTTP_CACHE_DIR)
    if raw_dir.is_absolute():
        return raw_dir
    # Prefer user LOCALAPPDATA for writable cache dir
    local = os.getenv('LOCALAPPDATA')
    if local:
        return (Path(local) / 'styletiles' / raw_dir).resolve()
    return (Path.home() / raw_dir).resolve()


def _prepare_cache_file(cache_dir: Path) -> Path:
    """Создаёт каталог и файл SQLite-кэша тайлов (режим WAL)."""
    cache_dir.mkdir(parents=True, exist_ok=True)
    cache_path = cache_dir / 'http_cache.sqlite'
    with contextlib.suppress(sqlite3.Error):
        if not cache_path.exists():
            with sqlite3.connect(cache_path) as conn:
                conn.execute('PRAGMA journal_mode=WAL;')
    return cache_path


def make_http_session(
    cache_dir: Path | None,
    *,
    expire_hours: int = HTTP_CACHE_EXPIRE_HOURS,
    stale_if_error_hours: int = HTTP_CACHE_STALE_IF_ERROR_HOURS,
) -> aiohttp.ClientSession:
    """
    HTTP-сессия для загрузки тайлов стиля с SSL-контекстом certifi.

    Если кэш включён и задан каталог, возвращает CachedSession с SQLite-бэкендом:
    тайлы живут ``expire_hours`` часов, а при сетевых ошибках устаревший тайл
    отдаётся ещё ``stale_if_error_hours`` часов (0 отключает).
    """
    connector = aiohttp.TCPConnector(
        ssl=ssl.create_default_context(cafile=certifi.where())
    )
    if not HTTP_CACHE_ENABLED or cache_dir is None:
        return aiohttp.ClientSession(connector=connector)

    cache_path = _prepare_cache_file(cache_dir)
    expire_after = timedelta(hours=max(0, int(expire_hours)))
    stale_if_error: bool | timedelta = (
        timedelta(hours=stale_if_error_hours) if stale_if_error_hours > 0 else False
    )
    logger.debug(
        'Tile cache at %s (expire %s, stale-if-error %s)',
        cache_path,
        expire_after,
        stale_if_error,
    )
    return CachedSession(
        cache=SQLiteBackend(str(cache_path), expire_after=expire_after),
        connector=connector,
        expire_after=expire_after,
        cache_control=bool(HTTP_CACHE_RESPECT_HEADERS),
        stale_if_error=stale_if_error,
    )


def decode_image(data: bytes) -> Image.Image:
    """PNG/JPEG/WebP -> PIL.Image; alpha is kept, everything else goes to RGB."""
    img = Image.open(BytesIO(data))
    img.load()
    if img.mode in ('RGBA', 'LA') or 'transparency' in img.info:
        return img.convert('RGBA')
    return img.convert('RGB')


class AiohttpTileTransport:
    """
    Выполняет ровно одну попытку загрузки тайла.

    Повторы здесь не делаются: решение о повторе принимает канал
    RetryChannel. Токен в логи и сообщения об ошибках не попадает.
    """

    def __init__(
        self,
        client: aiohttp.ClientSession,
        *,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
    ) -> None:
        self.client = client
        self.timeout = timeout

    async def fetch(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> Image.Image:
        safe_url = redact_url(url)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            resp = await self.client.get(
                url, headers=dict(headers) if headers else None, timeout=timeout
            )
        except (TimeoutError, aiohttp.ClientError) as e:
            msg = f'Request failed for {safe_url}: {e.__class__.__name__}'
            raise TransportFailure(msg, url=safe_url) from e
        try:
            sc = resp.status
            if sc != HTTP_OK:
                msg = f'HTTP {sc} for {safe_url}'
                raise TransportFailure(msg, status=sc, url=safe_url)
            try:
                data = await resp.read()
            except (TimeoutError, aiohttp.ClientError) as e:
                msg = f'Failed to read body of {safe_url}: {e.__class__.__name__}'
                raise TransportFailure(msg, url=safe_url) from e
        finally:
            # Освобождение ресурсов ответа для обоих типов (aiohttp и CachedResponse)
            try:
                close = getattr(resp, 'close', None)
                if callable(close):
                    close()
                release = getattr(resp, 'release', None)
                if callable(release):
                    release()
            except Exception as e:
                logger.debug('Failed to cleanup HTTP response: %s', e, exc_info=True)
        try:
            return decode_image(data)
        except (UnidentifiedImageError, OSError) as e:
            msg = f'Response of {safe_url} is not an image'
            raise TransportFailure(msg, status=sc, url=safe_url) from e
