"""Request-scoped access to the services created in the application lifespan."""

from fastapi import Request

from lugha.services.ai_service import AIResponseService
from lugha.services.auth_service import AuthService
from lugha.services.store import ChatStore


def get_store(request: Request) -> ChatStore:
    return request.app.state.store


def get_ai_service(request: Request) -> AIResponseService:
    return request.app.state.ai_service


def get_auth_service(request: Request) -> AuthService:
    return AuthService(request.app.state.store)
