import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from lugha.core.config import settings
from lugha.services.jwt_service import jwt_service
from lugha.services.rate_limiter import RateLimiter, limiter, rate_limit_middleware, request_identity
from lugha.services.redis_cache import redis_cache
from lugha.services.relay import RATE_LIMITED_ERROR, MessageRelay, RelayConnection
from tests.helpers import message_frame, seed_conversation


class StubPipeline:
    def __init__(self, results, calls):
        self.results = results
        self.calls = calls

    def incr(self, key):
        self.calls.append(("incr", key))
        return self

    def expire(self, key, ttl):
        self.calls.append(("expire", key, ttl))
        return self

    async def execute(self):
        if isinstance(self.results, Exception):
            raise self.results
        return self.results


class StubRedis:
    def __init__(self, results):
        self._results = results
        self.calls = []

    def pipeline(self):
        return StubPipeline(self._results, self.calls)


@pytest.fixture(autouse=True)
def reset_redis_state():
    """Ensure redis_cache is disconnected after each test."""
    original_client = redis_cache.client
    original_connected = redis_cache._connected
    try:
        redis_cache.client = None
        redis_cache._connected = False
        yield
    finally:
        redis_cache.client = original_client
        redis_cache._connected = original_connected


def connect_stub(results) -> StubRedis:
    stub = StubRedis(results)
    redis_cache.client = stub
    redis_cache._connected = True
    return stub


def make_request(headers: dict[str, str] | None = None, client=("10.0.0.7", 5000)) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({"type": "http", "method": "GET", "path": "/api/languages", "headers": raw_headers, "client": client})


@pytest.mark.asyncio
async def test_rate_limiter_allows_within_limits():
    stub = connect_stub([1, True, 1, True])

    rl = RateLimiter(window_seconds=60, global_limit=2, per_identity_limit=2, fail_closed=True)

    assert await rl.allow("user:1")
    keys = [call[1] for call in stub.calls if call[0] == "incr"]
    assert keys[0].startswith("lugha:rate:global:")
    assert keys[1].startswith("lugha:rate:identity:user:1:")
    assert all(call[2] == 61 for call in stub.calls if call[0] == "expire")


@pytest.mark.asyncio
async def test_rate_limiter_blocks_on_global_limit():
    connect_stub([3, True, 1, True])

    rl = RateLimiter(window_seconds=60, global_limit=2, per_identity_limit=5, fail_closed=True)

    assert not await rl.allow("user:1")


@pytest.mark.asyncio
async def test_rate_limiter_blocks_on_identity_limit():
    connect_stub([1, True, 4, True])

    rl = RateLimiter(window_seconds=60, global_limit=5, per_identity_limit=3, fail_closed=True)

    assert not await rl.allow("user:1")


@pytest.mark.asyncio
async def test_rate_limiter_fail_closed_when_storage_down():
    rl = RateLimiter(window_seconds=60, global_limit=5, per_identity_limit=3, fail_closed=True)

    assert not await rl.allow("user:1")


@pytest.mark.asyncio
async def test_rate_limiter_fail_open_when_configured():
    connect_stub(ConnectionError("redis went away"))

    rl = RateLimiter(window_seconds=60, global_limit=5, per_identity_limit=3, fail_closed=False)

    assert await rl.allow("user:1")


def test_retry_after_within_window():
    rl = RateLimiter(window_seconds=60, global_limit=5, per_identity_limit=3)

    assert 1 <= rl.retry_after() <= 60


def test_request_identity_prefers_token_user():
    token = jwt_service.create_access_token(user_id=42, username="amani", role="user")

    assert request_identity(make_request({"Authorization": f"Bearer {token}"})) == "user:42"
    assert request_identity(make_request({"Authorization": "Bearer nonsense"})) == "10.0.0.7"
    assert request_identity(make_request(client=None)) == "unknown"


def build_app() -> TestClient:
    app = FastAPI()
    app.middleware("http")(rate_limit_middleware)

    @app.get("/api/languages")
    async def languages():
        return {"status": "ok"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return TestClient(app)


def test_rate_limit_middleware_returns_429_when_denied(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", True)

    async def deny(_identity):
        return False

    monkeypatch.setattr(limiter, "allow", deny)
    monkeypatch.setattr(limiter, "retry_after", lambda: 5)

    resp = build_app().get("/api/languages")

    assert resp.status_code == 429
    assert resp.headers.get("Retry-After") == "5"
    assert resp.json()["detail"].startswith("Rate limit exceeded")


def test_rate_limit_middleware_passes_when_allowed(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", True)

    async def allow(_identity):
        return True

    monkeypatch.setattr(limiter, "allow", allow)

    resp = build_app().get("/api/languages")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_rate_limit_middleware_skips_paths_outside_api(monkeypatch):
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", True)

    async def deny(_identity):
        return False

    monkeypatch.setattr(limiter, "allow", deny)

    assert build_app().get("/health").status_code == 200


def test_rate_limit_middleware_disabled(monkeypatch):
    async def deny(_identity):
        return False

    monkeypatch.setattr(limiter, "allow", deny)

    assert build_app().get("/api/languages").status_code == 200


class RecordingSink:
    def __init__(self):
        self.frames = []

    async def send_text(self, data):
        self.frames.append(json.loads(data))


@pytest.mark.asyncio
async def test_relay_rejects_rate_limited_messages(monkeypatch, store, ai_service):
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", True)
    seen = []

    async def deny(identity):
        seen.append(identity)
        return False

    monkeypatch.setattr(limiter, "allow", deny)
    await seed_conversation(store, conversation_id=1, user_id=1)
    sink = RecordingSink()
    relay = MessageRelay(store, ai_service)

    await relay.handle_frame(message_frame(1, "Hello"), RelayConnection(sink, user_id=1))

    assert sink.frames == [{"type": "error", "error": RATE_LIMITED_ERROR}]
    assert seen == ["user:1"]
    assert await store.get_messages_by_conversation_id(1) == []


@pytest.mark.asyncio
async def test_relay_identity_falls_back_to_peer(monkeypatch, store, ai_service):
    monkeypatch.setattr(settings, "ENABLE_RATE_LIMITING", True)
    seen = []

    async def allow(identity):
        seen.append(identity)
        return True

    monkeypatch.setattr(limiter, "allow", allow)
    await seed_conversation(store, conversation_id=1, user_id=1)
    sink = RecordingSink()

    await MessageRelay(store, ai_service).handle_frame(message_frame(1, "Hello"), RelayConnection(sink, peer="10.0.0.9"))

    assert seen == ["10.0.0.9"]
    assert [frame["type"] for frame in sink.frames] == ["message", "message"]
