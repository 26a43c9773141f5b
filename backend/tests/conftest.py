"""
TravelDiary Backend: Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Every API test gets its own application (and so its own in-memory
       store) built by create_app() with explicit Settings, plus an HTTPX
       AsyncClient talking to it through ASGITransport. No server, database
       or identity provider is needed.

Fixture Hierarchy:
    test_settings ─▶ app ─▶ test_client
    make_app                   (app factory for non-default settings)
    fake_auth_service          (token → principal table)
    make_image_bytes           (Pillow-generated images of any size/format)
    entry_payload              (minimal valid POST /api/entries body)
    ticking_clock              (deterministic, strictly increasing timestamps)
"""

import io
import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# Keep a developer's .env / shell from leaking into the suite
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REQUIRE_AUTH"] = "false"

from travel_diary.config import Settings  # noqa: E402
from travel_diary.exceptions import AuthenticationError  # noqa: E402
from travel_diary.main import create_app  # noqa: E402
from travel_diary.services.auth_service import AuthService, Principal  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class FakeAuthService(AuthService):
    """Accepts exactly the tokens it was given; records every verification."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = tokens or {}
        self.verified = []
        self.closed = False

    async def verify_token(self, token: str) -> Principal:
        self.verified.append(token)
        if token not in self.tokens:
            raise AuthenticationError(message="Invalid or expired token")
        return Principal(user_id=self.tokens[token])

    async def close(self) -> None:
        self.closed = True


class TickingClock:
    """Returns a timestamp one second later on every call."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


# ══════════════════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════════════════

def build_settings(**overrides) -> Settings:
    values = {
        "storage_backend": "memory",
        "log_level": "WARNING",
        "rate_limit_requests": 10_000,
        "rate_limit_window": 60,
        "require_auth": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings() -> Settings:
    return build_settings()


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def make_app():
    """
    Factory for apps with non-default settings.

    Usage:
        app = make_app(require_auth=True, auth_service=FakeAuthService())
    """

    def _make(auth_service: Optional[AuthService] = None, **overrides):
        return create_app(build_settings(**overrides), auth_service=auth_service)

    return _make


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient bound to a fresh app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def fake_auth_service() -> FakeAuthService:
    return FakeAuthService(tokens={"good-token": "user-from-token"})


@pytest.fixture
def ticking_clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def screen_info() -> Dict:
    return {"width": 390, "height": 844, "orientation": "portrait-primary"}


@pytest.fixture
def entry_payload(screen_info) -> Dict:
    """The smallest body POST /api/entries accepts."""
    return {"userId": "user-1", "screenInfo": screen_info}


@pytest.fixture
def make_image_bytes():
    """
    Factory for in-memory images.

    Usage:
        png = make_image_bytes(1600, 1200, fmt="PNG")
        rotated = make_image_bytes(400, 200, exif_orientation=6)
    """

    def _make(
        width: int = 64,
        height: int = 48,
        fmt: str = "JPEG",
        mode: str = "RGB",
        color=(200, 120, 40),
        exif_orientation: Optional[int] = None,
    ) -> bytes:
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        image = Image.new(mode, (width, height), color)
        buffer = io.BytesIO()
        save_kwargs = {}
        if exif_orientation is not None:
            exif = Image.Exif()
            exif[0x0112] = exif_orientation  # Orientation tag
            save_kwargs["exif"] = exif
        image.save(buffer, format=fmt, **save_kwargs)
        return buffer.getvalue()

    return _make
