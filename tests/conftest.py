"""Pytest configuration and fixtures for tile source tests."""

import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from imagery.errors import TransportFailure  # noqa: E402


def create_test_png(size: int = 16, color: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGB', (size, size), color).save(buf, format='PNG')
    return buf.getvalue()


class FakeTransport:
    """
    Scripted transport: each entry of ``outcomes`` is consumed by one attempt.

    An exception instance is raised, anything else is returned as the image.
    Once the script is exhausted every attempt succeeds.
    """

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []

    async def fetch(self, url, *, headers=None):
        self.calls.append((url, headers))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return Image.new('RGB', (16, 16), (255, 0, 0))


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def failure():
    def _make(status=None):
        return TransportFailure(f'HTTP {status}', status=status, url='made/up')

    return _make


@pytest.fixture
def clean_token_env(monkeypatch, tmp_path):
    """No access token in the environment and no secrets file in cwd."""
    monkeypatch.delenv('MAPBOX_ACCESS_TOKEN', raising=False)
    monkeypatch.delenv('API_KEY', raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
