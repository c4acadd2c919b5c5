"""Access token resolution."""

from __future__ import annotations

import inspect
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from imagery.errors import CredentialResolutionError
from shared.constants import (
    ACCESS_TOKEN_ENV_VARS,
    DEFAULT_ACCESS_TOKEN,
    SECRETS_FILE_NAMES,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from imagery.options import ProviderOptions

logger = logging.getLogger(__name__)


def load_secrets(search_dirs: Iterable[Path] | None = None) -> Path | None:
    """
    Загружает первый найденный файл секретов (.secrets.env, .env).

    По умолчанию ищет в текущем рабочем каталоге. Уже заданные переменные
    окружения не перезаписываются.
    """
    dirs = list(search_dirs) if search_dirs is not None else [Path.cwd()]
    for d in dirs:
        for name in SECRETS_FILE_NAMES:
            candidate = d / name
            if candidate.is_file():
                load_dotenv(candidate)
                logger.debug('Loaded secrets from %s', candidate)
                return candidate
    return None


def token_from_environment() -> str | None:
    for var in ACCESS_TOKEN_ENV_VARS:
        value = os.getenv(var, '').strip()
        if value:
            return value
    return None


async def resolve_access_token(options: ProviderOptions) -> str:
    """
    Resolve the access token for ``options``.

    Order: explicit ``access_token``, then ``credential_source`` (a plain
    callable or one returning an awaitable), then the environment after
    loading the secrets file, and finally DEFAULT_ACCESS_TOKEN with a
    warning. No timeout is applied here; a source that
    never completes keeps the provider pending.
    """
    if options.access_token:
        return options.access_token

    if options.credential_source is not None:
        try:
            token = options.credential_source()
            if inspect.isawaitable(token):
                token = await token
        except Exception as e:
            msg = f'Credential source failed: {e}'
            raise CredentialResolutionError(msg) from e
        if not isinstance(token, str) or not token.strip():
            msg = 'Credential source returned an empty access token'
            raise CredentialResolutionError(msg)
        return token.strip()

    load_secrets()
    token = token_from_environment()
    if token is None:
        names = ', '.join(ACCESS_TOKEN_ENV_VARS)
        logger.warning(
            'No access token supplied, falling back to the default token. '
            'Pass access_token or set one of: %s',
            names,
        )
        return DEFAULT_ACCESS_TOKEN
    return token
