"""
LughaClient against the real app over an in-process ASGI transport.
"""

import httpx
import pytest
import pytest_asyncio

from lugha.client.http import LughaClient
from lugha.core.config import settings
from lugha.main import create_app
from lugha.services.ai_service import GREETINGS


@pytest_asyncio.fixture
async def api(store, ai_service):
    app = create_app(store=store, ai_service=ai_service)
    async with LughaClient("http://testserver", transport=httpx.ASGITransport(app=app)) as client:
        yield client


@pytest.mark.asyncio
async def test_session_flow(api):
    token = await api.register("wanjiru", "secret1", preferredLanguage="kik")

    assert api.access_token == token.access_token
    assert api.user.username == "wanjiru"
    assert (await api.get_user()).preferred_language == "kik"

    updated = await api.update_user(firstName="Wanjiru")
    assert updated.first_name == "Wanjiru"

    api.access_token = None
    await api.login("wanjiru", "secret1")
    assert api.user.id == token.user.id


@pytest.mark.asyncio
async def test_bad_login_raises_status_error(api):
    with pytest.raises(httpx.HTTPStatusError) as exc:
        await api.login("nobody", "secret1")

    assert exc.value.response.status_code == 401


@pytest.mark.asyncio
async def test_conversation_lifecycle(api, store):
    await api.register("amani", "secret1")

    conversation = await api.create_conversation("Maa basics", "mas")
    renamed = await api.update_conversation(conversation.id, title="Maa greetings")
    listed = await api.list_conversations()

    assert renamed.title == "Maa greetings"
    assert [c.id for c in listed] == [conversation.id]

    detail = await api.get_conversation(conversation.id)
    assert detail.conversation.id == conversation.id
    assert detail.messages == []

    await api.delete_conversation(conversation.id)
    assert await store.get_conversation(conversation.id) is None


@pytest.mark.asyncio
async def test_languages_and_tools(api):
    await api.register("amani", "secret1")

    languages = await api.list_languages()

    assert languages[0].code == "mas"
    assert await api.translate("water", "eng", "swa")
    insights = await api.language_insights("Sopa", "mas")
    assert insights.key_phrases == []


@pytest.mark.asyncio
async def test_upload(api, tmp_path):
    await api.register("amani", "secret1")
    path = tmp_path / "greetings.txt"
    path.write_text(GREETINGS["swa"])

    upload = await api.upload(path, "text/plain")

    assert upload.filename == "greetings.txt"
    assert upload.size == len(GREETINGS["swa"].encode())
    assert upload.file_url.startswith(f"{settings.API_PREFIX}/uploads/")


@pytest.mark.asyncio
async def test_admin_operations(api, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_USERNAMES", ["root"])
    await api.register("root", "secret1")

    key = await api.upsert_api_key("gemini", "k1")
    assert [k.id for k in await api.list_api_keys()] == [key.id]
    await api.delete_api_key(key.id)
    assert await api.list_api_keys() == []

    language = await api.create_language("Kalenjin", "kln", region="Kenya")
    disabled = await api.update_language(language.id, isActive=False)
    assert disabled.is_active is False

    promoted = await api.promote_user(api.user.id)
    assert promoted.role == "admin"
