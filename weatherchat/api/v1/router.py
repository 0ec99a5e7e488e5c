"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from weatherchat.api.v1 import chat

api_router = APIRouter()

api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
