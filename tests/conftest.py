import pytest
from fastapi.testclient import TestClient

from lugha.core.config import settings
from lugha.main import create_app
from lugha.services.ai_service import AIResponseService
from lugha.services.store import MemoryStore


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Offline AI, cheap hashing and a throwaway upload dir for every test."""
    monkeypatch.setattr(settings, "GEMINI_API_KEY", None)
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(settings, "ADMIN_USERNAMES", [])
    monkeypatch.setattr(settings, "REQUIRE_SOCKET_AUTH", False)
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", False)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ai_service(store):
    return AIResponseService(store)


@pytest.fixture
def client(store, ai_service):
    app = create_app(store=store, ai_service=ai_service)
    with TestClient(app) as test_client:
        yield test_client
