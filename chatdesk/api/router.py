from fastapi import APIRouter

from chatdesk.api.v1.routes import auth, chat, health, instructions, platforms, realtime, webhooks

api_router = APIRouter()
api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(auth.router, prefix="/v1/auth", tags=["auth"])
api_router.include_router(chat.router, prefix="/v1/chat", tags=["chat"])
api_router.include_router(instructions.router, prefix="/v1/instructions", tags=["instructions"])
api_router.include_router(platforms.router, prefix="/v1/platforms", tags=["platforms"])
api_router.include_router(webhooks.router, prefix="/v1/webhooks", tags=["webhooks"])
api_router.include_router(realtime.router, prefix="/v1/realtime", tags=["realtime"])
