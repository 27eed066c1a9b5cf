"""
WebSocket endpoint for the message relay.

Clients connect to SOCKET_PATH (default /ws). With REQUIRE_SOCKET_AUTH the
connection must carry an access token, either as ?token= or as a Bearer
Authorization header, or it is closed with 1008 before being accepted.
"""

import logging

from fastapi import APIRouter, WebSocket, status

from lugha.core.config import settings
from lugha.core.security import extract_bearer_token, user_id_from_token
from lugha.services.relay import MessageRelay

logger = logging.getLogger("lugha.ws")

router = APIRouter()


@router.websocket(settings.SOCKET_PATH)
async def relay_socket(websocket: WebSocket) -> None:
    relay: MessageRelay = websocket.app.state.relay

    token = websocket.query_params.get("token") or extract_bearer_token(websocket.headers.get("authorization"))
    user_id = user_id_from_token(token)

    if token and user_id is None:
        logger.info("Rejected socket with an invalid access token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if settings.REQUIRE_SOCKET_AUTH and user_id is None:
        logger.info("Rejected unauthenticated socket")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await relay.serve(websocket, user_id=user_id)
