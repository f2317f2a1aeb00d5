# tests/conftest.py
import os

os.environ["DATABASE_URL"] = "sqlite://" # Before anything imports app.core.config

import pytest
import pytest_asyncio
import logging
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.api import deps
from app.models.game import ImageResult
from app.schemas.gallery import StoredTrip
from app.services import gallery_service, session_store
from app.services.game_controller import GameController

SQLALCHEMY_DATABASE_URL_TEST = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL_TEST,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Trips saved at game over go to the test database as well
gallery_service.SessionLocal = TestingSessionLocal

@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create tables once for the entire test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

def override_get_db():
    """Dependency override for test database sessions."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[deps.get_db] = override_get_db

@pytest.fixture(scope="function")
def db_session():
    """
    Provides a clean, isolated database session for each test function
    by using transactions and rollbacks.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()

def make_ai_service() -> MagicMock:
    """A remote service double whose calls all succeed with predictable values."""
    service = MagicMock()
    service.generate_initial_image = AsyncMock(return_value=ImageResult(base64_image="img-0", mime_type="image/png"))
    service.edit_image = AsyncMock(side_effect=lambda image, mime_type, item: ImageResult(base64_image=f"{image}+{item}", mime_type=mime_type))
    service.get_ai_idea = AsyncMock(return_value="a rubber duck")
    service.get_trip_summary = AsyncMock(return_value="What a trip!")
    service.validate_memory = AsyncMock(return_value=True)
    service.create_online_game = AsyncMock()
    service.join_online_game = AsyncMock()
    service.get_game_state = AsyncMock()
    service.start_game = AsyncMock(return_value=None)
    service.submit_turn = AsyncMock(return_value=None)
    return service

@pytest.fixture
def ai_service() -> MagicMock:
    return make_ai_service()

@pytest.fixture
def trip_saver() -> MagicMock:
    return MagicMock()

@pytest_asyncio.fixture
async def controller(ai_service, trip_saver):
    """A controller whose background tasks live on the test's event loop."""
    game_controller = GameController(ai_service, controller_id="test-ctrl", trip_saver=trip_saver)
    yield game_controller
    game_controller.reset() # Cancel poll/timer/summary tasks before the loop closes

@pytest.fixture
def client(ai_service):
    """Provides a TestClient whose controllers talk to the `ai_service` double."""
    app.dependency_overrides[deps.get_ai_service] = lambda: ai_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(deps.get_ai_service, None)

@pytest.fixture(autouse=True)
def reset_in_memory_state():
    """Clears in-memory state before each test."""
    session_store.shutdown_all()
    yield
    session_store.active_controllers.clear()

def pytest_configure(config):
    """
    Hook to configure logging levels before tests are run.
    This silences noisy third-party libraries.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

@pytest.fixture(autouse=True)
def clean_gallery():
    """Trips committed through the API or at game over must not leak into the next test."""
    yield
    db = TestingSessionLocal()
    try:
        db.query(StoredTrip).delete()
        db.commit()
    finally:
        db.close()
