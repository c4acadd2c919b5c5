"""HTTP client infrastructure."""
from infrastructure.http.client import (
    AiohttpTileTransport,
    decode_image,
    make_http_session,
    resolve_cache_dir,
)

__all__ = [
    'AiohttpTileTransport',
    'decode_image',
    'make_http_session',
    'resolve_cache_dir',
]
