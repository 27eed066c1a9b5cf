from fastapi import APIRouter

from lugha.api.v1.endpoints import admin, auth, conversations, languages, upload

api_router = APIRouter()
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(conversations.router, tags=["conversations"])
api_router.include_router(languages.router, tags=["languages"])
api_router.include_router(upload.router, tags=["upload"])
api_router.include_router(admin.router, tags=["admin"])
