import base64
import io
import os
import tempfile

# The app builds its engine at import time; keep it away from the working directory.
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/fabricai-test.db")

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from fabricai.db import Base, build_engine, get_db
from fabricai.provider import ProviderPart, ProviderResponse, get_provider_factory
from fabricai.server import app
from fabricai.settings import settings
from fabricai.storage import LocalObjectStorage, get_storage

ADMIN_EMAIL = "admin@polaris.it"
SELLER_EMAIL = "venditore@polaris.it"
PASSWORD = "divano123"


def make_image(fmt="PNG", size=(64, 48), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_jpeg_base64(size=(64, 48)) -> str:
    return base64.b64encode(make_image("JPEG", size)).decode("ascii")


class StubProvider:
    """Stands in for Gemini: records calls and replays queued outcomes."""

    def __init__(self):
        self.calls = []
        self.credentials = []
        self.outcomes = []

    def factory(self, credential):
        self.credentials.append(credential)
        return self

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    async def generate(self, images, instruction):
        self.calls.append((list(images), instruction))
        outcome = self.outcomes.pop(0) if self.outcomes else image_response("aW1hZ2U=")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def image_response(image_base64: str) -> ProviderResponse:
    return ProviderResponse(parts=[
        ProviderPart(text="Here is your sofa."),
        ProviderPart(image_base64=image_base64, mime_type="image/png"),
    ])


def text_response(text: str) -> ProviderResponse:
    return ProviderResponse(parts=[ProviderPart(text=text)])


@pytest.fixture
def config(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "GOOGLE_API_KEY", "server-key")
    monkeypatch.setattr(settings, "ADMIN_SERVICE_KEY", "service-key")
    monkeypatch.setattr(settings, "ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setattr(settings, "GENERATION_RETRY_DELAY", 0.0)
    monkeypatch.setattr(settings, "MEDIA_DIR", str(tmp_path / "media"))
    return settings


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def client(config, provider, tmp_path):
    db_path = tmp_path / "fabricai.db"

    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    storage = LocalObjectStorage(config.MEDIA_DIR, config.MEDIA_URL)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_provider_factory] = lambda: provider.factory

    yield TestClient(app)

    app.dependency_overrides.clear()


def register(client, email, password=PASSWORD, full_name=None):
    response = client.post("/api/auth/register", json={"email": email, "password": password, "full_name": full_name})
    assert response.status_code == 201, response.text
    return response.json()


def login(client, email, password=PASSWORD) -> str:
    response = client.post("/api/auth/login", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_token(client):
    register(client, ADMIN_EMAIL, full_name="Giulia Admin")
    return login(client, ADMIN_EMAIL)


@pytest.fixture
def seller_token(client):
    register(client, SELLER_EMAIL, full_name="Marco Venditore")
    return login(client, SELLER_EMAIL)


@pytest.fixture
def admin_headers(admin_token):
    return bearer(admin_token)


@pytest.fixture
def seller_headers(seller_token):
    return bearer(seller_token)
