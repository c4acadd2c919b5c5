"""Command line entry point: fetch a single style tile to a file."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from imagery import MapboxStyleTileProvider, TileSourceError, backoff_policy
from imagery.credentials import load_secrets
from infrastructure.http.client import resolve_cache_dir
from shared.constants import (
    DEFAULT_USERNAME,
    HTTP_BACKOFF_FACTOR,
    HTTP_CACHE_EXPIRE_HOURS,
    HTTP_RETRIES_DEFAULT,
    LOG_FORMAT,
    MAPBOX_STYLES_BASE,
)

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file), encoding='utf-8'))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='styletiles',
        description='Загрузка тайлов стилей Mapbox',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Подробный лог')
    parser.add_argument('--log-file', type=Path, default=None, help='Файл лога')
    sub = parser.add_subparsers(dest='command', required=True)

    fetch = sub.add_parser('fetch', help='Скачать один тайл')
    fetch.add_argument('level', type=int)
    fetch.add_argument('x', type=int)
    fetch.add_argument('y', type=int)
    fetch.add_argument('-o', '--output', type=Path, required=True)
    fetch.add_argument('--style-id', required=True)
    fetch.add_argument('--username', default=DEFAULT_USERNAME)
    fetch.add_argument('--url', default=MAPBOX_STYLES_BASE)
    fetch.add_argument('--tilesize', type=int, default=None)
    fetch.add_argument('--scale-factor', action='store_true', help='Тайлы @2x')
    fetch.add_argument('--access-token', default=None)
    fetch.add_argument('--retries', type=int, default=HTTP_RETRIES_DEFAULT)
    fetch.add_argument('--backoff', type=float, default=HTTP_BACKOFF_FACTOR)
    fetch.add_argument('--cache', action='store_true', help='Использовать HTTP-кэш')
    fetch.add_argument(
        '--cache-hours',
        type=int,
        default=HTTP_CACHE_EXPIRE_HOURS,
        help='Время жизни тайлов в кэше (часы)',
    )
    return parser


async def fetch_tile(args: argparse.Namespace) -> None:
    cache_dir = resolve_cache_dir() if args.cache else None
    async with MapboxStyleTileProvider(
        url=args.url,
        username=args.username,
        style_id=args.style_id,
        access_token=args.access_token,
        tilesize=args.tilesize,
        scale_factor=args.scale_factor,
        cache_dir=cache_dir,
        cache_expire_hours=args.cache_hours,
    ) as provider:
        provider.error_event.add_observer(backoff_policy(args.retries, args.backoff))
        image = await provider.fetch_image(args.level, args.x, args.y)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    image.save(args.output)
    logger.info('Tile %s/%s/%s saved to %s', args.level, args.x, args.y, args.output)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    load_secrets()
    try:
        asyncio.run(fetch_tile(args))
    except TileSourceError as e:
        logger.error('%s', e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
