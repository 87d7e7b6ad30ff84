"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

# Plain log output under pytest (set before the app module is imported)
os.environ.setdefault("HEROTIME_JSON_LOGS", "false")

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.db.models import Base, User
from herotime_api.db.session import get_db
from herotime_api.generation.inference import InferenceClient
from herotime_api.main import app
from herotime_api.providers import get_billing, get_inference, get_redis_client, get_storage
from herotime_api.storage.s3_client import StorageClient

TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_USER_ID = "user-1111"
TEST_USER_EMAIL = "hero@example.com"
PUBLIC_BASE = "https://proj.supabase.co"


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a fresh in-memory database session for each test.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def make_user(db_session: Session):
    """Factory inserting a users row with sensible defaults."""

    def _make(user_id: str = TEST_USER_ID, **fields) -> User:
        values = {
            "email": TEST_USER_EMAIL,
            "plan": "free",
            "generations_used": 0,
            "generations_limit": 2,
        }
        values.update(fields)
        user = User(id=user_id, **values)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def s3_mock() -> MagicMock:
    """boto3 S3 client double."""
    return MagicMock()


@pytest.fixture
def storage(s3_mock: MagicMock) -> StorageClient:
    """Real StorageClient over a mocked boto3 client."""
    return StorageClient(public_base_url=PUBLIC_BASE, client=s3_mock)


@pytest.fixture
def replicate_mock() -> MagicMock:
    """Replicate SDK double whose prediction succeeds with a URL string."""
    prediction = MagicMock()
    prediction.id = "pred_123"
    prediction.status = "succeeded"
    prediction.error = None
    prediction.output = "https://replicate.delivery/pbxt/result.png"
    prediction.async_wait = AsyncMock(return_value=None)

    client = MagicMock()
    client.predictions.async_create = AsyncMock(return_value=prediction)
    client.prediction = prediction
    return client


@pytest.fixture
def inference(replicate_mock: MagicMock) -> InferenceClient:
    return InferenceClient(
        api_token="r8_test",
        model="test/model",
        max_wait_sec=5,
        client=replicate_mock,
    )


@pytest.fixture
def billing_mock() -> MagicMock:
    return MagicMock()


@pytest.fixture
def redis_mock() -> MagicMock:
    """Redis double whose locks are always acquired."""
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    return client


@pytest.fixture
def test_client(
    db_session: Session,
    storage: StorageClient,
    inference: InferenceClient,
    billing_mock: MagicMock,
    redis_mock: MagicMock,
):
    """TestClient with DB, auth and every provider dependency overridden."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close - db_session fixture handles it

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_context] = lambda: AuthContext(
        user_id=TEST_USER_ID, email=TEST_USER_EMAIL
    )
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_inference] = lambda: inference
    app.dependency_overrides[get_billing] = lambda: billing_mock
    app.dependency_overrides[get_redis_client] = lambda: redis_mock

    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()
