"""Unit test conftest: no Redis, database or network required."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from PIL import Image

Handler = Callable[[httpx.Request], httpx.Response]


def png_bytes(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (200, 120, 40)).save(buf, format="PNG")
    return buf.getvalue()


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def template_path() -> Path:
    """The gallery template shipped with the repo."""
    return Path(__file__).resolve().parent.parent.parent / "templates" / "gallery.html"


@pytest.fixture
def small_png() -> bytes:
    return png_bytes(100, 100)


@pytest.fixture
def large_png() -> bytes:
    return png_bytes(1000, 1000)
