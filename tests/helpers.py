"""Shared helpers for the test suite."""

import json

from fastapi.testclient import TestClient

from lugha.schemas.chat import NewConversation, NewUser
from lugha.services.store import MemoryStore


def register(client: TestClient, username: str, password: str = "secret1") -> tuple[dict, dict]:
    """Register a user; returns (auth headers, user json)."""
    response = client.post("/api/register", json={"username": username, "password": password})
    assert response.status_code == 201, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['accessToken']}"}, body["user"]


async def seed_conversation(store: MemoryStore, conversation_id: int, user_id: int, language: str = "mas"):
    """Create users 1..user_id and conversations 1..conversation_id, the last owned by user_id."""
    for n in range(1, user_id + 1):
        await store.create_user(NewUser(username=f"user{n}", password_hash="x"))
    conversation = None
    for _ in range(conversation_id):
        conversation = await store.create_conversation(
            NewConversation(user_id=user_id, title="Learning", language=language)
        )
    return conversation


def message_frame(conversation_id: int, content: str, user_id: int | None = None, language: str = "mas") -> str:
    frame = {"type": "message", "conversationId": conversation_id, "content": content, "language": language}
    if user_id is not None:
        frame["userId"] = user_id
    return json.dumps(frame)
