import hashlib
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENABLE_EVENT_RELAY", "false")
os.environ.setdefault("METADATA_STORE", "memory")

import pytest
from eth_account import Account
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import create_tables  # noqa: F401  registers every model
from config import Settings, get_settings
from database import Base, get_db
from modules.auth.services.auth_service import AuthService
from modules.documents.dependencies import get_metadata_store, get_session_factory
from modules.documents.services import DocumentFileStore, DocumentService, LedgerClient
from modules.metadata.services import InMemoryMetadataStore
from rate_limit import RateLimiter


def sha(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def auth_headers(address: str) -> dict:
    return {"Authorization": f"Bearer {AuthService.create_access_token(address)}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        upload_dir=str(tmp_path / "uploads"),
        rate_limit_enabled=False,
        enable_event_relay=False,
        metadata_store="memory",
    )


@pytest.fixture
def metadata_store():
    return InMemoryMetadataStore()


@pytest.fixture
def ledger_client(session_factory, test_settings):
    return LedgerClient(session_factory, settings=test_settings)


@pytest.fixture
def document_service(ledger_client, metadata_store, test_settings):
    return DocumentService(
        ledger_client, metadata_store, DocumentFileStore(test_settings.upload_dir), test_settings
    )


@pytest.fixture
def wallets():
    """Three fresh wallets: two declared signers and an outsider."""
    return [Account.create() for _ in range(3)]


@pytest.fixture
def client(session_factory, test_settings, metadata_store):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_metadata_store] = lambda: metadata_store

    previous_limiter = app.state.rate_limiter
    app.state.rate_limiter = RateLimiter(enabled=False)

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.rate_limiter = previous_limiter
