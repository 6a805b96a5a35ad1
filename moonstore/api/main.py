from fastapi import APIRouter

from .routes import admin, advertisements, cron, health, heartbeat, users

api_router = APIRouter()
api_router.include_router(admin.router)
api_router.include_router(advertisements.router)
api_router.include_router(cron.router)
api_router.include_router(health.router)
api_router.include_router(heartbeat.router)
api_router.include_router(users.router)
