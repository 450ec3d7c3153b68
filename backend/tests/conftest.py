"""
SeriCare Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides come first (before any sericare import reads
       settings); every test gets its own SQLite database file and upload
       directory.

Fixture Hierarchy (all function-scoped):
    db_engine ── session_factory ── db_session
                                 └─ client (HTTPX over ASGITransport)
    upload_dir ── files ── upload_service ──┘
    fake_classifier ───────┘
    owner / other_owner: users inserted directly
"""

import os
import random
import tempfile

# Must precede every sericare import: settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="sericare_test_")
os.environ["INFERENCE_URL"] = "http://inference.test/predict"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sericare.database import Base, get_db_session
from sericare.models.upload import Upload  # noqa: F401
from sericare.models.user import User
from sericare.schemas.upload import Prediction
from sericare.services.classifier_base import Classifier
from sericare.services.file_service import FileService, IncomingImage
from sericare.services.upload_service import UploadService, get_upload_service
from sericare.services.upload_store import UploadStore

# Smallest JPEG a decoder will accept: SOI + JFIF APP0 + EOI
JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xd9"
)


class FakeClassifier(Classifier):
    """
    Scriptable Classifier.

    Set `prediction` for the verdict, or `error` to make classify() raise.
    Every stored file it is asked about is recorded in `calls`.
    """

    def __init__(self, prediction=None, error=None, healthy=True):
        self.prediction = prediction or Prediction(label="healthy", confidence=0.93)
        self.error = error
        self.healthy = healthy
        self.calls = []

    async def classify(self, stored):
        self.calls.append(stored)
        if self.error is not None:
            raise self.error
        return self.prediction

    async def health_check(self):
        return self.healthy


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Fresh SQLite database file per test.

    A file rather than :memory: so concurrent sessions get their own
    connections, as they would against PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sericare.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


async def make_user(session_factory, email="farmer@example.com", phone="9876543210", name="Ravi"):
    async with session_factory() as session:
        user = User(name=name, email=email, phone=phone, password_hash="not-a-real-hash")
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def owner(session_factory):
    return await make_user(session_factory)


@pytest_asyncio.fixture
async def other_owner(session_factory):
    return await make_user(session_factory, email="other@example.com", phone="9123456780", name="Lakshmi")


# ══════════════════════════════════════════════════════════════════════════
# Upload Pipeline
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def files(upload_dir):
    return FileService(upload_dir=str(upload_dir))


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def upload_service(files, fake_classifier):
    return UploadService(
        files=files,
        classifier=fake_classifier,
        store=UploadStore(),
        rng=random.Random(7),
    )


@pytest.fixture
def sample_image_bytes():
    return JPEG_BYTES


@pytest.fixture
def incoming_image():
    return IncomingImage(filename="worm.jpg", content_type="image/jpeg", content=JPEG_BYTES)


def stored_files(upload_dir):
    """Names of the files currently in the upload directory."""
    return sorted(p.name for p in upload_dir.iterdir())


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(session_factory, upload_service):
    """
    HTTPX AsyncClient bound to the app, with the database and the upload
    service swapped for the per-test ones.
    """
    from sericare.main import app

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_upload_service] = lambda: upload_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def signup(client, email="farmer@example.com", phone="9876543210", password="secret123"):
    """Register through the API and return (token, user payload)."""
    response = await client.post(
        "/auth/signup",
        json={"name": "Ravi Kumar", "email": email, "phone": phone, "password": password},
    )
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return data["token"], data["user"]


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
