"""
End-to-end WebSocket tests through the FastAPI app.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from lugha.core.config import settings
from lugha.services.ai_service import GREETINGS
from tests.helpers import register


def start_conversation(client, username: str = "amani", language: str = "mas"):
    headers, user = register(client, username)
    conversation = client.post(
        "/api/conversations", headers=headers, json={"title": "Lesson", "language": language}
    ).json()
    return headers, user, conversation


class TestRelaySocket:
    def test_message_round_trip(self, client):
        headers, user, conversation = start_conversation(client)

        with client.websocket_connect("/ws") as ws:
            ws.send_json(
                {
                    "type": "message",
                    "conversationId": conversation["id"],
                    "content": "Hello",
                    "userId": user["id"],
                    "language": "mas",
                }
            )
            echo = ws.receive_json()
            reply = ws.receive_json()

        assert echo["type"] == "message"
        assert echo["message"]["content"] == "Hello"
        assert echo["message"]["isUserMessage"] is True
        assert reply["message"]["content"] == GREETINGS["mas"]
        assert reply["message"]["isUserMessage"] is False

        history = client.get(f"/api/conversations/{conversation['id']}", headers=headers).json()
        assert [m["id"] for m in history["messages"]] == [echo["message"]["id"], reply["message"]["id"]]

    def test_bad_frames_keep_connection_open(self, client):
        _, user, conversation = start_conversation(client)

        with client.websocket_connect("/ws") as ws:
            ws.send_text("{oops")
            assert ws.receive_json() == {"type": "error", "error": "Invalid message format"}

            ws.send_json({"type": "message", "conversationId": conversation["id"], "content": "", "language": "mas"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json(
                {
                    "type": "message",
                    "conversationId": conversation["id"],
                    "content": "Tell me about culture",
                    "userId": user["id"],
                    "language": "mas",
                }
            )
            assert ws.receive_json()["type"] == "message"
            assert ws.receive_json()["type"] == "message"

    def test_token_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "REQUIRE_SOCKET_AUTH", True)

        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws"):
                pass

        assert exc.value.code == 1008

    def test_invalid_token_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws?token=not-a-token"):
                pass

        assert exc.value.code == 1008

    def test_authenticated_socket_enforces_ownership(self, client, monkeypatch):
        monkeypatch.setattr(settings, "REQUIRE_SOCKET_AUTH", True)
        _, owner, conversation = start_conversation(client, "amani")
        intruder_headers, _ = register(client, "baraka")
        token = intruder_headers["Authorization"].removeprefix("Bearer ")

        with client.websocket_connect(f"/ws?token={token}") as ws:
            ws.send_json(
                {
                    "type": "message",
                    "conversationId": conversation["id"],
                    "content": "Hello",
                    "language": "mas",
                }
            )
            assert ws.receive_json() == {"type": "error", "error": "Forbidden"}

            ws.send_json(
                {
                    "type": "message",
                    "conversationId": conversation["id"],
                    "content": "Hello",
                    "userId": owner["id"],
                    "language": "mas",
                }
            )
            assert ws.receive_json() == {"type": "error", "error": "Forbidden"}
