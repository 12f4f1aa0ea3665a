"""
API Routes
"""
from fastapi import APIRouter

from app.api.routes.drivers import router as drivers_router
from app.api.routes.requests import router as requests_router
from app.api.webhooks.telegram import router as telegram_router

router = APIRouter()

router.include_router(drivers_router, prefix="/drivers", tags=["Drivers"])
router.include_router(requests_router, prefix="/requests", tags=["Requests"])
router.include_router(telegram_router, prefix="/telegram", tags=["Webhooks"])
